"""ASGI guard for JSON write endpoints: content type and body size."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, cast

from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

_TASK = r"/tasks/[^/]+"

JSON_WRITE_ROUTES = re.compile(
    "^(?:"
    + "|".join(
        (
            r"/users(?:/me)?",
            r"/tasks(?:/expire)?",
            _TASK + r"/(?:complete|cancel|withdraw|remove-acceptor|extend|duplicate)",
            _TASK + r"/applications(?:/[^/]+/(?:accept|reject))?",
            _TASK + r"/(?:ratings|comments)",
        )
    )
    + ")$"
)


def _rejection(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": {}},
    )


def _is_json(scope: Scope) -> bool:
    for name, value in cast("list[tuple[bytes, bytes]]", scope.get("headers", [])):
        if name.lower() == b"content-type":
            return value.decode("latin-1").lower().startswith("application/json")
    return False


class RequestValidationMiddleware:
    """
    Screens POSTs to the JSON write routes before FastAPI sees them.

    Non-JSON bodies get 415 and bodies above ``max_body_size`` get 413.
    Paths outside the write routes pass through untouched so the router
    still answers 404 and 405.
    """

    def __init__(self, app: ASGIApp, max_body_size: int) -> None:
        self.app = app
        self.max_body_size = max_body_size

    async def _read_body(self, receive: Receive) -> bytes | None:
        """Buffer the whole body, or return None once it passes the limit."""
        chunks: list[bytes] = []
        size = 0
        more = True
        while more:
            message = await receive()
            chunk = cast("bytes", message.get("body", b""))
            size += len(chunk)
            if size > self.max_body_size:
                return None
            chunks.append(chunk)
            more = bool(message.get("more_body", False))
        return b"".join(chunks)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        guarded = (
            scope["type"] == "http"
            and scope.get("method") == "POST"
            and JSON_WRITE_ROUTES.match(cast("str", scope.get("path", ""))) is not None
        )
        if not guarded:
            await self.app(scope, receive, send)
            return

        if not _is_json(scope):
            rejection = _rejection(
                415, "UNSUPPORTED_MEDIA_TYPE", "Content-Type must be application/json"
            )
            await rejection(scope, receive, send)
            return

        body = await self._read_body(receive)
        if body is None:
            rejection = _rejection(
                413, "PAYLOAD_TOO_LARGE", "Request body exceeds maximum allowed size"
            )
            await rejection(scope, receive, send)
            return

        delivered = False

        async def replay() -> Message:
            nonlocal delivered
            if delivered:
                return {"type": "http.disconnect"}
            delivered = True
            return {"type": "http.request", "body": body, "more_body": False}

        await self.app(scope, cast("Any", replay), send)
