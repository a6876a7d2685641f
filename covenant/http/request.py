import asyncio
from typing import Any, Dict, List, Optional, Sequence

from covenant.errors import ContentTypeError
from covenant.http.content_type import (
    ContentType,
    base_mime,
    mime_of,
    resolve_content_type,
)
from covenant.http.decoders import (
    MultipartPart,
    collect_fields,
    collect_files,
    decode_body,
    decode_form,
    parse_multipart,
)
from covenant.transport import TransportRequest

_UNSET: Any = object()


class HttpRequest:
    """Per-request view over the transport request.

    The transport body stream can be consumed only once, so the raw bytes
    live in a write-once cell filled by the first consumer; ``body()``,
    ``files()`` and ``raw_body()`` all read from that cell.
    """

    def __init__(
        self,
        request: TransportRequest,
        route: str,
        param_keys: Sequence[str],
        expected_content_type: Optional[ContentType] = None,
    ):
        self.route = route
        self._req = request
        self._param_keys = list(param_keys)
        self._expected_content_type = expected_content_type

        self._body_lock = asyncio.Lock()
        self._raw_body: Optional[bytes] = None
        self._decoded_body: Any = _UNSET
        self._files: Optional[Dict[str, Any]] = None
        self._parts: Optional[List[MultipartPart]] = None

        self._headers: Optional[Dict[str, str]] = None
        self._query: Optional[Dict[str, Any]] = None
        self._params: Optional[Dict[str, str]] = None

    @property
    def headers(self) -> Dict[str, str]:
        if self._headers is None:
            headers: Dict[str, str] = {}
            for name, value in self._req.headers():
                name = name.lower()
                headers[name] = f"{headers[name]}, {value}" if name in headers else value
            self._headers = headers
        return self._headers

    @property
    def params(self) -> Dict[str, str]:
        if self._params is None:
            self._params = {
                key: self._req.get_parameter(index)
                for index, key in enumerate(self._param_keys)
            }
        return self._params

    @property
    def query(self) -> Dict[str, Any]:
        if self._query is None:
            self._query = decode_form(self._req.query_string())
        return self._query

    @property
    def url(self) -> str:
        return self._req.url()

    @property
    def method(self) -> str:
        return self._req.method().lower()

    @property
    def content_type_header(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def content_type(self) -> Optional[ContentType]:
        return resolve_content_type(self.content_type_header)

    def validate_content_type(self, expected: ContentType) -> bool:
        return self.content_type == expected

    async def raw_body(self) -> bytes:
        if self._raw_body is not None:
            return self._raw_body

        async with self._body_lock:
            if self._raw_body is None:
                buffer = bytearray()
                async for chunk, is_last in self._req.read_chunks():
                    buffer.extend(chunk)
                    if is_last:
                        break
                self._raw_body = bytes(buffer)

        return self._raw_body

    async def body(self) -> Any:
        if self._decoded_body is not _UNSET:
            return self._decoded_body

        header = self.content_type_header
        if not header:
            self._decoded_body = {}
            return self._decoded_body

        self._check_content_type(header)

        if self.content_type is ContentType.upload:
            decoded = collect_fields(await self._multipart_parts())
        else:
            decoded = decode_body(await self.raw_body(), header)

        self._decoded_body = decoded
        return decoded

    async def files(self) -> Dict[str, Any]:
        if self._files is not None:
            return self._files

        header = self.content_type_header
        if not header or self.content_type is not ContentType.upload:
            self._files = {}
            return self._files

        self._check_content_type(header)
        self._files = collect_files(await self._multipart_parts())
        return self._files

    async def _multipart_parts(self) -> List[MultipartPart]:
        if self._parts is None:
            raw = await self.raw_body()
            self._parts = parse_multipart(raw, self.content_type_header) if raw else []
        return self._parts

    def _check_content_type(self, header: str) -> None:
        expected = self._expected_content_type
        if expected is None or self.validate_content_type(expected):
            return
        raise ContentTypeError(
            f"Expected {mime_of(expected)}, got {base_mime(header) or 'nothing'}",
        )
