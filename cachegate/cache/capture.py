"""Response capture for the ASGI send channel.

ResponseCapture wraps the ``send`` callable handed to the downstream app.
It holds back ``http.response.start`` until the first body message arrives,
so headers can still be rewritten once it is known whether the response
will be cached, then forwards every message exactly once and unmodified
apart from those headers. After the final body chunk it stops intercepting.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from starlette.datastructures import MutableHeaders
from starlette.types import Message, Send


@dataclass
class CapturedResponse:
    """Status, headers and body of a downstream response."""

    status_code: int
    headers: MutableHeaders
    body: bytes = field(default=b"", repr=False)


def stamp_headers(send: Send, headers: Mapping[str, str]) -> Send:
    """Return a send callable that sets `headers` on the response start."""

    async def send_with_headers(message: Message) -> None:
        if message["type"] == "http.response.start":
            mutable = MutableHeaders(raw=list(message.get("headers", [])))
            for name, value in headers.items():
                mutable[name] = value
            message["headers"] = mutable.raw
        await send(message)

    return send_with_headers


class ResponseCapture:
    """Single-use interception of one response.

    Args:
        send: The real ASGI send callable.
        stamp: Headers set on the response before anything else sees it.
        decide: Called once with the response on the first non-empty body
            message. Returns True to capture the body; may edit headers.
        complete: Called with the full response just before the final body
            chunk is forwarded, only when decide() returned True and the
            body is non-empty.
    """

    def __init__(
        self,
        send: Send,
        *,
        stamp: Mapping[str, str] | None = None,
        decide: Callable[[CapturedResponse], bool],
        complete: Callable[[CapturedResponse], None],
    ) -> None:
        self._send = send
        self._stamp = dict(stamp or {})
        self._decide = decide
        self._complete = complete
        self._start: Message | None = None
        self._chunks: list[bytes] = []
        self._capturing = False
        self._done = False
        self.response: CapturedResponse | None = None

    @property
    def done(self) -> bool:
        return self._done

    async def __call__(self, message: Message) -> None:
        if self._done:
            await self._send(message)
            return

        if message["type"] == "http.response.start":
            headers = MutableHeaders(raw=list(message.get("headers", [])))
            for name, value in self._stamp.items():
                headers[name] = value
            self.response = CapturedResponse(status_code=message["status"], headers=headers)
            self._start = message
            return

        if message["type"] != "http.response.body" or self.response is None:
            # trailers, pathsend and friends: stop capturing
            await self._release_start()
            self._done = True
            await self._send(message)
            return

        body: bytes = message.get("body", b"")
        more_body: bool = message.get("more_body", False)

        if self._start is not None:
            if body or more_body:
                self._capturing = self._decide(self.response)
            await self._release_start()

        if self._capturing:
            self._chunks.append(body)
            if not more_body:
                self.response.body = b"".join(self._chunks)
                self._chunks.clear()
                if self.response.body:
                    self._complete(self.response)

        if not more_body:
            self._done = True
        await self._send(message)

    async def close(self) -> None:
        """Forward a start message the app never followed with a body."""
        await self._release_start()
        self._done = True

    async def _release_start(self) -> None:
        if self._start is None or self.response is None:
            return
        message = {**self._start, "headers": self.response.headers.raw}
        self._start = None
        await self._send(message)
