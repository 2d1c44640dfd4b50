"""Fam calendar integration service."""

__version__ = "0.1.0"
