"""Boundary between the pipeline and the HTTP server that carries it.

The pipeline only needs route registration, a request capability and a
response capability; anything implementing these protocols can host it.
"""

from dataclasses import dataclass
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Optional,
    Protocol,
    Tuple,
    Union,
)


class ConnectionAborted(Exception):
    """Raised by body reads once the peer has gone away."""


class TransportRequest(Protocol):
    def headers(self) -> Iterable[Tuple[str, str]]:
        """Header pairs, names lowercased."""

    def query_string(self) -> str: ...

    def get_parameter(self, index: int) -> str:
        """Path parameter by its position in the route pattern."""

    def url(self) -> str: ...

    def method(self) -> str: ...

    def read_chunks(self) -> AsyncIterator[Tuple[bytes, bool]]:
        """Body chunks with the ``is_last`` flag. The stream can be read once."""


class TransportResponse(Protocol):
    def write_status(self, status: int) -> None: ...

    def write_header(self, name: str, value: str) -> None: ...

    async def end(self, body: bytes = b"") -> None: ...

    def on_aborted(self, callback: Callable[[], None]) -> None: ...

    def cork(self) -> AsyncContextManager[None]:
        """Batch status, headers and body into one write."""


RouteCallback = Callable[[TransportResponse, TransportRequest], Awaitable[None]]


class WebSocket(Protocol):
    """Server side of an accepted websocket connection."""

    params: Dict[str, str]

    async def send(self, message: Union[str, bytes]) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


@dataclass(frozen=True)
class WebSocketBehavior:
    """Websocket callbacks; each may be a plain function or a coroutine function.

    ``open(ws)`` runs once the connection is accepted, ``message(ws, data)``
    for every text or binary frame, ``close(ws, code, reason)`` once the
    connection is gone.
    """

    open: Optional[Callable[..., Any]] = None
    message: Optional[Callable[..., Any]] = None
    close: Optional[Callable[..., Any]] = None


class Transport(Protocol):
    def add_route(self, method: str, path: str, callback: RouteCallback) -> None: ...

    def add_ws(self, path: str, behavior: WebSocketBehavior) -> None: ...

    async def listen(
        self, port: int, callback: Optional[Callable[[], Awaitable[None] | None]] = None
    ) -> bool: ...


__all__ = [
    "ConnectionAborted",
    "RouteCallback",
    "Transport",
    "TransportRequest",
    "TransportResponse",
    "WebSocket",
    "WebSocketBehavior",
]
