"""Reverse proxy for live HLS channels."""

__version__ = "1.0.0"
