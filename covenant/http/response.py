from typing import Any, Dict, Optional

from pydantic import BaseModel
from pydantic_core import to_json

from covenant.errors import DEFAULT_TAXONOMY, ErrorTaxonomy


class HttpResponse:
    """Response buffer filled by the handler and the resolver.

    Nothing reaches the transport until the server finalizes the request,
    so status, headers and body can be overwritten up to that point.
    """

    def __init__(self, taxonomy: ErrorTaxonomy = DEFAULT_TAXONOMY):
        self.status_code: Optional[int] = None
        self.headers: Dict[str, str] = {}
        self.body: Optional[bytes] = None
        self._taxonomy = taxonomy

    @property
    def has_body(self) -> bool:
        return self.body is not None

    def status(self, status: int) -> "HttpResponse":
        self.status_code = int(status)
        return self

    def header(self, key: str, value: str) -> "HttpResponse":
        self.headers[key.lower()] = str(value)
        return self

    def json(self, data: Any) -> "HttpResponse":
        self.header("content-type", "application/json")
        self.body = to_json(data)
        return self

    def text(self, text: str) -> "HttpResponse":
        self.headers.setdefault("content-type", "text/plain; charset=utf-8")
        self.body = text.encode("utf-8")
        return self

    def binary(
        self, data: bytes, content_type: str = "application/octet-stream"
    ) -> "HttpResponse":
        self.header("content-type", content_type)
        self.body = bytes(data)
        return self

    def send(self, data: Any) -> "HttpResponse":
        if isinstance(data, str):
            return self.text(data)
        if isinstance(data, (bytes, bytearray, memoryview)):
            return self.binary(bytes(data))
        if isinstance(data, (dict, list, tuple, BaseModel)):
            return self.json(data)
        return self.text(str(data))

    def end(self, text: Optional[str] = None) -> "HttpResponse":
        self.body = (text or "").encode("utf-8")
        return self

    def error(self, code: str, text: Optional[str] = None) -> "HttpResponse":
        return self.status(self._taxonomy.status_of(code)).json(
            {"code": code, "message": text or ""}
        )
