"""Streaming conversation engine for the Airchat desktop client."""

__version__ = "0.1.0"
