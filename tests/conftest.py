from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Iterable, Iterator

import pytest

from covenant.config import Config
from covenant.server import Server
from covenant.transport import ConnectionAborted, RouteCallback, WebSocketBehavior


class FakeRequest:
    def __init__(
        self,
        method: str = "GET",
        url: str = "/",
        *,
        headers: dict[str, str] | None = None,
        query: str = "",
        params: Iterable[str] = (),
        chunks: Iterable[bytes] = (),
        abort_on_read: bool = False,
    ) -> None:
        self._method = method
        self._url = url
        self._headers = {k.lower(): v for k, v in (headers or {}).items()}
        self._query = query
        self._params = list(params)
        self._chunks = list(chunks)
        self._abort_on_read = abort_on_read
        self.reads = 0
        self.on_read: Callable[[], None] | None = None

    def headers(self) -> list[tuple[str, str]]:
        return list(self._headers.items())

    def query_string(self) -> str:
        return self._query

    def get_parameter(self, index: int) -> str:
        return self._params[index] if index < len(self._params) else ""

    def url(self) -> str:
        return self._url

    def method(self) -> str:
        return self._method

    async def read_chunks(self) -> AsyncIterator[tuple[bytes, bool]]:
        self.reads += 1
        if self.on_read is not None:
            self.on_read()
        if self._abort_on_read:
            raise ConnectionAborted()
        if not self._chunks:
            yield b"", True
            return
        for index, chunk in enumerate(self._chunks):
            yield chunk, index == len(self._chunks) - 1


class FakeResponse:
    def __init__(self) -> None:
        self.writes: list[tuple] = []
        self.corked = False
        self._abort_callbacks: list[Callable[[], None]] = []

    def write_status(self, status: int) -> None:
        self.writes.append(("status", status, self.corked))

    def write_header(self, name: str, value: str) -> None:
        self.writes.append(("header", name, value))

    async def end(self, body: bytes = b"") -> None:
        self.writes.append(("end", body))

    def on_aborted(self, callback: Callable[[], None]) -> None:
        self._abort_callbacks.append(callback)

    def abort(self) -> None:
        for callback in self._abort_callbacks:
            callback()

    @asynccontextmanager
    async def cork(self) -> AsyncIterator[None]:
        self.corked = True
        try:
            yield
        finally:
            self.corked = False

    @property
    def status(self) -> int | None:
        statuses = [write[1] for write in self.writes if write[0] == "status"]
        return statuses[-1] if statuses else None

    @property
    def headers(self) -> dict[str, str]:
        return {write[1]: write[2] for write in self.writes if write[0] == "header"}

    @property
    def body(self) -> bytes | None:
        bodies = [write[1] for write in self.writes if write[0] == "end"]
        return bodies[-1] if bodies else None


class FakeTransport:
    def __init__(self, bind_ok: bool = True) -> None:
        self.routes: dict[tuple[str, str], RouteCallback] = {}
        self.sockets: dict[str, WebSocketBehavior] = {}
        self.bind_ok = bind_ok
        self.listened_on: int | None = None

    def add_route(self, method: str, path: str, callback: RouteCallback) -> None:
        self.routes[(method, path)] = callback

    def add_ws(self, path: str, behavior: WebSocketBehavior) -> None:
        self.sockets[path] = behavior

    async def listen(self, port: int, callback=None) -> bool:
        if not self.bind_ok:
            return False
        self.listened_on = port
        if callback is not None:
            result = callback()
            if result is not None:
                await result
        return True

    async def dispatch(self, method: str, path: str, request: FakeRequest) -> FakeResponse:
        response = FakeResponse()
        await self.routes[(method, path)](response, request)
        return response


@pytest.fixture()
def config() -> Config:
    return Config(DEBUG=False, SERVICE_NAME="tests", _env_file=None)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def server(config: Config, transport: FakeTransport) -> Iterator[Server]:
    instance = Server(config, transport=transport)
    yield instance
    instance.close()
