"""HTTP API."""

from commentvault.api.router import api_router

__all__ = ["api_router"]
