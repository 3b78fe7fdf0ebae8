"""Depot - self-hosted software update distribution server."""

__version__ = "0.1.0"
