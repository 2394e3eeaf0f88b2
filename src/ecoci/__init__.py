"""Ecosystem CI for the rstack build tools."""

__version__ = "0.1.0"
