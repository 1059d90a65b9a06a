"""Archon - self-hosted site, node and domain manager."""

__version__ = "0.3.0"
