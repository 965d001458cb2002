"""cachegate - response caching middleware for ASGI applications."""

__version__ = "0.1.0"
