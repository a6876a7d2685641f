import asyncio
import inspect
import logging
import re
import socket
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Tuple,
    Union,
)

import uvicorn
from starlette.applications import Starlette
from starlette.routing import BaseRoute, Route, WebSocketRoute
from starlette.types import Message, Receive, Scope, Send
from starlette.websockets import WebSocket as StarletteWebSocket

from covenant.transport import ConnectionAborted, RouteCallback, WebSocketBehavior

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r":(\w+)")

# (chunk, is_last); chunk is None once the peer has disconnected
BodyChunk = Tuple[Optional[bytes], bool]


def to_route_path(path: str) -> str:
    return _PLACEHOLDER_RE.sub(r"{\1}", path)


class AsgiRequest:
    def __init__(self, scope: Scope, chunks: "asyncio.Queue[BodyChunk]"):
        self._scope = scope
        self._chunks = chunks
        self._consumed = False

    def headers(self) -> List[Tuple[str, str]]:
        return [
            (name.decode("latin-1").lower(), value.decode("latin-1"))
            for name, value in self._scope.get("headers", [])
        ]

    def query_string(self) -> str:
        return self._scope.get("query_string", b"").decode("latin-1")

    def get_parameter(self, index: int) -> str:
        values = list(self._scope.get("path_params", {}).values())
        return str(values[index]) if index < len(values) else ""

    def url(self) -> str:
        return self._scope["path"]

    def method(self) -> str:
        return self._scope["method"]

    async def read_chunks(self) -> AsyncIterator[Tuple[bytes, bool]]:
        if self._consumed:
            raise RuntimeError("Request body has already been consumed")
        self._consumed = True

        while True:
            chunk, is_last = await self._chunks.get()
            if chunk is None:
                raise ConnectionAborted()
            yield chunk, is_last
            if is_last:
                return


class AsgiResponse:
    """Collects status and headers, then sends start and body together."""

    def __init__(self, send: Send):
        self._send = send
        self._status = 200
        self._headers: List[Tuple[bytes, bytes]] = []
        self._abort_callbacks: List[Callable[[], None]] = []
        self._pending: Optional[bytes] = None
        self._corked = False
        self.aborted = False
        self.finished = False

    def write_status(self, status: int) -> None:
        self._status = status

    def write_header(self, name: str, value: str) -> None:
        self._headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))

    async def end(self, body: bytes = b"") -> None:
        if self.finished or self.aborted or self._pending is not None:
            return
        self._pending = body
        if not self._corked:
            await self._flush()

    def on_aborted(self, callback: Callable[[], None]) -> None:
        self._abort_callbacks.append(callback)

    def abort(self) -> None:
        if self.finished or self.aborted:
            return
        self.aborted = True
        for callback in self._abort_callbacks:
            callback()

    @asynccontextmanager
    async def cork(self) -> AsyncIterator[None]:
        self._corked = True
        try:
            yield
        finally:
            self._corked = False
        await self._flush()

    async def _flush(self) -> None:
        if self._pending is None or self.finished or self.aborted:
            return
        body, self._pending = self._pending, None
        self.finished = True

        headers = list(self._headers)
        if not any(name == b"content-length" for name, _ in headers):
            headers.append((b"content-length", str(len(body)).encode("latin-1")))

        await self._send(
            {"type": "http.response.start", "status": self._status, "headers": headers}
        )
        await self._send({"type": "http.response.body", "body": body})


class RouteApp:
    """ASGI app for one route: pumps the request body and hands the pair to the callback."""

    def __init__(self, callback: RouteCallback):
        self._callback = callback

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        chunks: "asyncio.Queue[BodyChunk]" = asyncio.Queue()
        response = AsgiResponse(send)
        request = AsgiRequest(scope, chunks)

        pump = asyncio.create_task(self._pump(receive, chunks, response))
        try:
            await self._callback(response, request)
        finally:
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)

    @staticmethod
    async def _pump(
        receive: Receive, chunks: "asyncio.Queue[BodyChunk]", response: AsgiResponse
    ) -> None:
        while True:
            message: Message = await receive()
            if message["type"] == "http.request":
                more_body = message.get("more_body", False)
                await chunks.put((message.get("body", b""), not more_body))
            elif message["type"] == "http.disconnect":
                response.abort()
                await chunks.put((None, True))
                return


async def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class AsgiWebSocket:
    def __init__(self, websocket: StarletteWebSocket):
        self._websocket = websocket
        self.params: Dict[str, str] = dict(websocket.path_params)
        self.closed = False

    async def send(self, message: Union[str, bytes]) -> None:
        if isinstance(message, str):
            await self._websocket.send_text(message)
        else:
            await self._websocket.send_bytes(bytes(message))

    async def close(self, code: int = 1000) -> None:
        if not self.closed:
            self.closed = True
            await self._websocket.close(code)


class WebSocketApp:
    """ASGI app for one websocket route, driving the behavior callbacks."""

    def __init__(self, behavior: WebSocketBehavior):
        self._behavior = behavior

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        websocket = StarletteWebSocket(scope, receive=receive, send=send)
        await websocket.accept()
        peer = AsgiWebSocket(websocket)
        code, reason = 1000, ""

        try:
            await _invoke(self._behavior.open, peer)
            while not peer.closed:
                message: Message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    code = message.get("code", 1000)
                    reason = message.get("reason") or ""
                    break
                data = message.get("text")
                if data is None:
                    data = message.get("bytes", b"")
                await _invoke(self._behavior.message, peer, data)
        except Exception as exc:
            logger.error(f"websocket {scope['path']} failed: {exc}", exc_info=exc)
            code, reason = 1011, "Internal error"
            await peer.close(code)

        peer.closed = True
        await _invoke(self._behavior.close, peer, code, reason)


class AsgiTransport:
    """Transport on top of starlette routing, served by uvicorn."""

    def __init__(self, host: str = "0.0.0.0", **uvicorn_options: Any):
        self.host = host
        self.app = Starlette()
        self._uvicorn_options = uvicorn_options

    @property
    def routes(self) -> List[BaseRoute]:
        return self.app.router.routes

    def add_route(self, method: str, path: str, callback: RouteCallback) -> None:
        self.app.router.routes.append(
            Route(to_route_path(path), endpoint=RouteApp(callback), methods=[method.upper()])
        )

    def add_ws(self, path: str, behavior: WebSocketBehavior) -> None:
        self.app.router.routes.append(
            WebSocketRoute(to_route_path(path), endpoint=WebSocketApp(behavior))
        )

    async def listen(
        self,
        port: int,
        callback: Optional[Callable[[], Optional[Awaitable[None]]]] = None,
    ) -> bool:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, port))
        except OSError as exc:
            sock.close()
            logger.error(f"Failed to bind {self.host}:{port}: {exc}")
            return False

        await _invoke(callback)

        config = uvicorn.Config(
            self.app,
            log_config=None,
            lifespan="off",
            **self._uvicorn_options,
        )
        logger.info(f"Listening on {self.host}:{port}")
        await uvicorn.Server(config).serve(sockets=[sock])
        return True


__all__ = [
    "AsgiRequest",
    "AsgiResponse",
    "AsgiTransport",
    "AsgiWebSocket",
    "RouteApp",
    "WebSocketApp",
    "to_route_path",
]
