"""Production scheduling core for garment sewing lines."""

__version__ = "0.1.0"
