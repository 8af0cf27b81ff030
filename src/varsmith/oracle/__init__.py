"""Oracle, surface and index collaborators behind structural protocols."""
