"""Iterative refinement and validation pipeline."""
