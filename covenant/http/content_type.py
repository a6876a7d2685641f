import enum
from types import MappingProxyType
from typing import Mapping, Optional

from python_multipart.multipart import parse_options_header


class ContentType(str, enum.Enum):
    """Content-type families the body decoder understands."""

    json = "json"
    form = "form"
    upload = "upload"
    binary = "binary"
    stream = "stream"


CONTENT_TYPES: Mapping[ContentType, str] = MappingProxyType(
    {
        ContentType.json: "application/json",
        ContentType.form: "application/x-www-form-urlencoded",
        ContentType.upload: "multipart/form-data",
        ContentType.binary: "application/octet-stream",
        ContentType.stream: "text/event-stream",
    }
)

MIME_TYPES: Mapping[str, ContentType] = MappingProxyType(
    {mime: family for family, mime in CONTENT_TYPES.items()}
)

MEDIA_PREFIXES = ("image/", "audio/", "video/")


def base_mime(header: Optional[str]) -> str:
    """``multipart/form-data; boundary=x`` -> ``multipart/form-data``."""
    if not header:
        return ""
    return header.split(";", 1)[0].strip().lower()


def resolve_content_type(header: Optional[str]) -> Optional[ContentType]:
    return MIME_TYPES.get(base_mime(header))


def mime_of(content_type: ContentType) -> str:
    return CONTENT_TYPES[ContentType(content_type)]


def boundary_of(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    _, options = parse_options_header(header)
    boundary = options.get(b"boundary")
    return boundary.decode("latin-1") if boundary else None


def is_media(mime: str) -> bool:
    return mime.startswith(MEDIA_PREFIXES)
