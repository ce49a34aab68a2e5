"""pagegen - background content generation pipeline for catalog pages."""

__version__ = "0.1.0"
