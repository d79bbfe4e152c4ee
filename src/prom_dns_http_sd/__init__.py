"""Prometheus HTTP service discovery backed by DNS provider zones."""

__version__ = "0.1.0"
