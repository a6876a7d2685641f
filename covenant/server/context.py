import asyncio
import mimetypes
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional, Union

from covenant.errors import ErrorTaxonomy, HttpError
from covenant.http.content_type import ContentType
from covenant.http.request import HttpRequest
from covenant.http.response import HttpResponse
from covenant.logger import Logger


class Context:
    """What a handler sees: decoded inputs, middleware data and the response buffer.

    Body and files are decoded on first access and cached for the rest of
    the request. Writing methods return the context, so they chain::

        return ctx.status(201).header("location", url).json(item)
    """

    def __init__(
        self,
        request: HttpRequest,
        response: HttpResponse,
        data: Dict[str, Any],
        *,
        request_id: str,
        logger: Logger,
        taxonomy: ErrorTaxonomy,
    ):
        self.request = request
        self.response = response
        self.data = data
        self.request_id = request_id
        self.logger = logger
        self._taxonomy = taxonomy

    @property
    def params(self) -> Dict[str, str]:
        return self.request.params

    @property
    def query(self) -> Dict[str, Any]:
        return self.request.query

    @property
    def headers(self) -> Dict[str, str]:
        return self.request.headers

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def url(self) -> str:
        return self.request.url

    @property
    def content_type(self) -> Optional[ContentType]:
        return self.request.content_type

    async def body(self) -> Any:
        return await self.request.body()

    async def files(self) -> Dict[str, Any]:
        return await self.request.files()

    async def raw_body(self) -> bytes:
        return await self.request.raw_body()

    def status(self, status: int) -> "Context":
        self.response.status(status)
        return self

    def header(self, key: str, value: str) -> "Context":
        self.response.header(key, value)
        return self

    def json(self, data: Any) -> "Context":
        self.response.json(data)
        return self

    def text(self, text: str) -> "Context":
        if self.response.status_code is None:
            self.response.status(200)
        self.response.text(text)
        return self

    def binary(
        self, data: bytes, content_type: str = "application/octet-stream"
    ) -> "Context":
        self.response.binary(data, content_type)
        return self

    async def file(self, path: Union[str, Path]) -> "Context":
        """Respond with the file at ``path``, typed by its extension; 404 if it cannot be read."""
        target = Path(path)
        try:
            data = await asyncio.to_thread(target.read_bytes)
        except OSError as exc:
            self.logger.debug(f"[{self.request_id}] cannot read {target}: {exc}")
            self.response.status(404).text("Not found")
            return self

        mime, _ = mimetypes.guess_type(target.name)
        if self.response.status_code is None:
            self.response.status(200)
        self.response.binary(data, mime or "application/octet-stream")
        return self

    def send(self, data: Any) -> "Context":
        self.response.send(data)
        return self

    def end(self, text: Optional[str] = None) -> "Context":
        self.response.end(text)
        return self

    def error(
        self, code: str, text: Optional[str] = None, details: Optional[Any] = None
    ) -> NoReturn:
        raise HttpError.of(code, text, details, taxonomy=self._taxonomy)
