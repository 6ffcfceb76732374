"""Metadata extraction pipeline for a digital-asset library."""

__version__ = "0.1.0"
