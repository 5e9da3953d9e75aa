"""Route modules for the API."""

from . import relay

__all__ = [
    "relay",
]
