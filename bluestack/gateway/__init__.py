"""Edge gateway middleware."""

from .middleware import REQUEST_ID_HEADER, EdgeMiddleware, client_address

__all__ = [
    "EdgeMiddleware",
    "REQUEST_ID_HEADER",
    "client_address",
]
