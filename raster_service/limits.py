"""
Request body size cap.

Runs as plain ASGI middleware so it sees the body before FastAPI parses or
spools it. A declared Content-Length is checked up front; chunked bodies
are counted as they arrive and replayed to the app only when they stay
under the cap.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List

from fastapi.responses import JSONResponse
from starlette.datastructures import Headers

from .config import RasterSettings
from .errors import PayloadTooLarge

logger = logging.getLogger(__name__)

Message = Dict[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]


class RequestSizeLimitMiddleware:
    """Reject request bodies larger than ``settings.max_request_bytes`` with 413.

    The limit is read on every request so a changed setting takes effect
    without rebuilding the middleware stack.
    """

    def __init__(self, app, settings: RasterSettings):
        self.app = app
        self.settings = settings

    async def __call__(self, scope: Dict[str, Any], receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = self.settings.max_request_bytes
        content_length = Headers(scope=scope).get("content-length")

        if content_length is not None:
            if content_length.isdigit() and int(content_length) > limit:
                await self._reject(scope, receive, send, PayloadTooLarge(int(content_length), limit))
                return
            await self.app(scope, receive, send)
            return

        messages: List[Message] = []
        received = 0
        while True:
            message = await receive()
            messages.append(message)
            if message["type"] != "http.request":
                break
            received += len(message.get("body", b""))
            if received > limit:
                await self._reject(scope, receive, send, PayloadTooLarge(received, limit))
                return
            if not message.get("more_body", False):
                break

        buffered = iter(messages)

        async def replay() -> Message:
            for message in buffered:
                return message
            return await receive()

        await self.app(scope, replay, send)

    @staticmethod
    async def _reject(scope: Dict[str, Any], receive: Receive, send: Send, error: PayloadTooLarge) -> None:
        logger.warning(f"{scope.get('method')} {scope.get('path')} rejected: [{error.code}] {error}")
        response = JSONResponse(
            status_code=error.status_code,
            content={"error": error.code, "message": str(error)},
        )
        await response(scope, receive, send)
