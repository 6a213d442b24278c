"""Per-request deadline."""

import asyncio

import structlog
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from campus.errors import Timeout, error_body

logger = structlog.get_logger()


class RequestTimeoutMiddleware:
    """Answer 504 when a handler runs past the deadline.

    The handler is cancelled, so its database session closes and uncommitted
    work is rolled back. A response that already started streaming is left
    alone.
    """

    def __init__(self, app: ASGIApp, timeout_seconds: float = 10.0) -> None:
        self.app = app
        self.timeout_seconds = timeout_seconds

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await asyncio.wait_for(self.app(scope, receive, send_wrapper), timeout=self.timeout_seconds)
        except TimeoutError:
            logger.warning(
                "request_timeout",
                path=scope.get("path"),
                method=scope.get("method"),
                timeout_seconds=self.timeout_seconds,
            )
            if response_started:
                raise
            expired = Timeout("Request timed out")
            response = JSONResponse(status_code=expired.status_code, content=error_body(expired.kind, expired.message))
            await response(scope, receive, send)
