from __future__ import annotations

from dataclasses import dataclass

from starlette.requests import Request

# Invocation bodies carry a whole base64 image.
DEFAULT_MAX_BODY_BYTES = 20_000_000


@dataclass(frozen=True)
class BodyTooLargeError(Exception):
    max_body_bytes: int

    def __str__(self) -> str:
        return f"Request body exceeds max_body_bytes={self.max_body_bytes}"


async def read_request_body(request: Request, *, max_body_bytes: int | None = DEFAULT_MAX_BODY_BYTES) -> bytes:
    """Read an HTTP request body with a hard cap.

    Raises BodyTooLargeError as soon as the declared Content-Length or the
    streamed body goes over ``max_body_bytes``.
    """
    if max_body_bytes is None:
        return await request.body()

    if max_body_bytes <= 0:
        raise ValueError("max_body_bytes must be positive or None")

    content_length = request.headers.get("content-length")
    if content_length is not None and content_length.isdigit() and int(content_length) > max_body_bytes:
        raise BodyTooLargeError(max_body_bytes)

    body = bytearray()
    async for chunk in request.stream():
        if not chunk:
            continue
        if len(body) + len(chunk) > max_body_bytes:
            raise BodyTooLargeError(max_body_bytes)
        body.extend(chunk)

    return bytes(body)
