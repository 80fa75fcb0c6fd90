"""CAD assembly translation and animation pipeline service."""

__version__ = "0.1.0"
