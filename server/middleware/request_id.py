"""
Request ID middleware.

Reads X-Request-ID from the incoming request (or mints one) so every log
line written while handling the request can be correlated.
"""

import uuid
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from logging_config import request_id_var


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    HTTP middleware for request ID generation and propagation.

    - Uses the incoming X-Request-ID header when present
    - Generates a UUID otherwise
    - Exposes it through request.state and the logging context var
    - Echoes it on the response
    """

    def __init__(
        self,
        app,
        header_name: str = "X-Request-ID",
        generator: Optional[Callable[[], str]] = None,
    ):
        super().__init__(app)
        self.header_name = header_name
        self.generator = generator or (lambda: str(uuid.uuid4()))

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(self.header_name) or self.generator()
        request.state.request_id = request_id

        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
            response.headers[self.header_name] = request_id
            return response
        finally:
            request_id_var.reset(token)


def get_request_id(request: Request) -> Optional[str]:
    """Return the request ID stored by RequestIDMiddleware, if any."""
    return getattr(request.state, "request_id", None)
