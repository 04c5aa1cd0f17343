"""
Middleware components for the Phonics game server.

Provides:
- RequestIDMiddleware: Request tracing with X-Request-ID
"""

from .request_id import RequestIDMiddleware

__all__ = [
    "RequestIDMiddleware",
]
