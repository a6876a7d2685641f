from covenant.http.content_type import (
    CONTENT_TYPES,
    ContentType,
    base_mime,
    resolve_content_type,
)
from covenant.http.decoders import UploadedFile, decode_body, decode_form
from covenant.http.request import HttpRequest
from covenant.http.response import HttpResponse

__all__ = [
    "CONTENT_TYPES",
    "ContentType",
    "HttpRequest",
    "HttpResponse",
    "UploadedFile",
    "base_mime",
    "decode_body",
    "decode_form",
    "resolve_content_type",
]
