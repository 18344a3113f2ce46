"""Installed software discovery, two-tier catalog storage and metadata enrichment."""

__version__ = "0.1.0"
