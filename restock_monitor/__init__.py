"""Proxy-rotating restock monitor."""

__version__ = "1.0.0"
