# gitgrep_api/streaming.py
"""
Incremental JSON array responses for long-running result streams.

The status line and headers are sent together with the first item, so a
stream that fails before producing anything can still be answered with a
proper error response. Once anything has been sent the only option left on
failure is to drop the connection.
"""

import asyncio
import enum
import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Optional

from fastapi.encoders import jsonable_encoder
from starlette.background import BackgroundTask
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

logger = logging.getLogger(__name__)


class IllegalResponseTransition(RuntimeError): ...


class ResponseState(enum.Enum):
    UNCOMMITTED = "uncommitted"
    COMMITTED = "committed"


class ResponseCommitment:
    """Two-state latch over an ASGI ``send``.

    ``start`` is only legal while uncommitted and moves to COMMITTED;
    ``write`` is only legal once committed. There is no way back.
    """

    def __init__(self, send: Send):
        self._send = send
        self.state = ResponseState.UNCOMMITTED

    @property
    def committed(self) -> bool:
        return self.state is ResponseState.COMMITTED

    async def start(self, status: int, headers: list[tuple[bytes, bytes]]) -> None:
        if self.committed:
            raise IllegalResponseTransition("response headers have already been sent")
        self.state = ResponseState.COMMITTED
        await self._send({"type": "http.response.start", "status": status, "headers": headers})

    async def write(self, body: str, more_body: bool = True) -> None:
        if not self.committed:
            raise IllegalResponseTransition("response body written before headers")
        await self._send({"type": "http.response.body", "body": body.encode("utf-8"), "more_body": more_body})


def render_json(item: Any, indent: Optional[int] = None) -> str:
    return json.dumps(
        jsonable_encoder(item),
        ensure_ascii=False,
        allow_nan=False,
        indent=indent,
        separators=(",", ":"),
    )


class StreamingResponder:
    """Write the items of an async stream as a JSON array onto ``send``.

    With a non-empty ``delimiter`` items are separated by it instead of a
    comma and no brackets are written.
    """

    def __init__(
        self,
        send: Send,
        headers: list[tuple[bytes, bytes]],
        delimiter: str = "",
        indent: Optional[int] = None,
        error_status: int = 400,
    ):
        self.commitment = ResponseCommitment(send)
        self.headers = headers
        self.delimiter = delimiter
        self.indent = indent
        self.error_status = error_status

    @property
    def wrap(self) -> bool:
        return self.delimiter == ""

    async def attach(self, results: AsyncIterator[Any]) -> None:
        try:
            async with aclosing(results) as items:
                async for item in items:
                    await self.on_next(item)
        except Exception as exc:
            if self.commitment.committed:
                logger.error(f"Stream failed after the response was committed: {exc}")
                raise
            await self.on_error(exc)
            return
        await self.on_complete()

    async def on_next(self, item: Any) -> None:
        body = render_json(item, self.indent)
        if not self.commitment.committed:
            await self.commitment.start(200, self.headers)
            if self.wrap:
                body = "[" + body
        else:
            body = (self.delimiter or ",") + body
        await self.commitment.write(body)

    async def on_error(self, exc: Exception) -> None:
        logger.error(f"Stream failed before any output: {exc}")
        body = render_json({"error": str(exc)})
        await self.commitment.start(
            self.error_status,
            [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body.encode("utf-8"))).encode("latin-1")),
            ],
        )
        await self.commitment.write(body, more_body=False)

    async def on_complete(self) -> None:
        if not self.commitment.committed:
            await self.commitment.start(200, self.headers)
            if self.wrap:
                await self.commitment.write("[")
        await self.commitment.write("]" if self.wrap else "", more_body=False)


class StreamingJSONResponse(Response):
    """ASGI response driving a StreamingResponder.

    A client disconnect cancels the stream, which closes every generator
    feeding it and so terminates any process still running.
    """

    media_type = "application/json"

    def __init__(
        self,
        content: AsyncIterator[Any],
        delimiter: str = "",
        indent: Optional[int] = None,
        headers: Optional[dict[str, str]] = None,
        background: Optional[BackgroundTask] = None,
    ):
        self.content = content
        self.delimiter = delimiter
        self.indent = indent
        self.status_code = 200
        self.background = background
        self.init_headers(headers)

    async def _listen_for_disconnect(self, receive: Receive) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                break

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        responder = StreamingResponder(send, self.raw_headers, delimiter=self.delimiter, indent=self.indent)
        stream_task = asyncio.ensure_future(responder.attach(self.content))
        disconnect_task = asyncio.ensure_future(self._listen_for_disconnect(receive))
        try:
            await asyncio.wait({stream_task, disconnect_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stream_task.cancel()
            disconnect_task.cancel()
            await asyncio.gather(stream_task, disconnect_task, return_exceptions=True)

        if stream_task.cancelled():
            logger.info("Client disconnected; stream cancelled")
            return
        stream_task.result()

        if self.background is not None:
            await self.background()
