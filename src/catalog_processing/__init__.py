"""Catalog processing system - discover, validate and catalog web assets from a seed URL."""

__version__ = "0.1.0"
