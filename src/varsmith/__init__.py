"""varsmith: iterative refinement and validation of page variations."""

__version__ = "0.1.0"
