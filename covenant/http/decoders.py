"""Body decoders for the supported content-type families.

Form, query and multipart payloads share one accumulation policy:

* ``key[]`` always collects into a list stored under ``key``;
* a repeated plain ``key`` promotes the first scalar into a list, so
  ``a=1&a=2`` decodes to ``{"a": ["1", "2"]}``.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl

from pydantic import BaseModel
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from covenant.errors import BodyDecodeError
from covenant.http.content_type import (
    ContentType,
    MIME_TYPES,
    base_mime,
    boundary_of,
    is_media,
)


class UploadedFile(BaseModel):
    data: bytes
    filename: str
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class MultipartPart:
    name: str
    data: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return bool(self.filename) and bool(self.content_type)


def accumulate(data: Dict[str, Any], name: str, value: Any) -> None:
    if name.endswith("[]"):
        key = name[:-2]
        current = data.get(key)
        if current is None:
            data[key] = [value]
        elif isinstance(current, list):
            current.append(value)
        else:
            data[key] = [current, value]
        return

    if name not in data:
        data[name] = value
    elif isinstance(data[name], list):
        data[name].append(value)
    else:
        data[name] = [data[name], value]


def decode_form(raw: str) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if not raw:
        return data

    for key, value in parse_qsl(raw, keep_blank_values=True):
        accumulate(data, key, value)

    return data


def decode_json(raw: bytes) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise BodyDecodeError(f"Invalid JSON body: {exc}") from exc


def parse_multipart(raw: bytes, content_type: str) -> List[MultipartPart]:
    boundary = boundary_of(content_type)
    if not boundary:
        raise BodyDecodeError("Multipart body without a boundary parameter")

    parts: List[MultipartPart] = []
    headers: Dict[bytes, bytes] = {}
    header_field = bytearray()
    header_value = bytearray()
    data = bytearray()
    ended = False

    def on_part_begin() -> None:
        headers.clear()
        data.clear()

    def on_part_data(chunk: bytes, start: int, end: int) -> None:
        data.extend(chunk[start:end])

    def on_header_field(chunk: bytes, start: int, end: int) -> None:
        header_field.extend(chunk[start:end])

    def on_header_value(chunk: bytes, start: int, end: int) -> None:
        header_value.extend(chunk[start:end])

    def on_header_end() -> None:
        headers[bytes(header_field).lower()] = bytes(header_value)
        header_field.clear()
        header_value.clear()

    def on_part_end() -> None:
        _, options = parse_options_header(headers.get(b"content-disposition", b""))
        filename = options.get(b"filename")
        part_type = headers.get(b"content-type")
        if filename is not None:
            filename = filename.decode("utf-8", errors="replace")
        if part_type is not None:
            part_type = part_type.decode("latin-1").strip()
        parts.append(
            MultipartPart(
                name=options.get(b"name", b"").decode("utf-8", errors="replace"),
                data=bytes(data),
                filename=filename,
                content_type=part_type,
            )
        )

    def on_end() -> None:
        nonlocal ended
        ended = True

    parser = MultipartParser(
        boundary,
        {
            "on_part_begin": on_part_begin,
            "on_part_data": on_part_data,
            "on_part_end": on_part_end,
            "on_header_field": on_header_field,
            "on_header_value": on_header_value,
            "on_header_end": on_header_end,
            "on_end": on_end,
        },
    )
    try:
        parser.write(raw)
        parser.finalize()
    except MultipartParseError as exc:
        raise BodyDecodeError(f"Invalid multipart body: {exc}") from exc

    if not ended:
        raise BodyDecodeError("Multipart body is missing its closing boundary")

    return parts


def collect_fields(parts: List[MultipartPart]) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for part in parts:
        if not part.is_file:
            accumulate(data, part.name, part.data.decode("utf-8", errors="replace"))
    return data


def collect_files(parts: List[MultipartPart]) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for part in parts:
        if part.is_file:
            accumulate(
                data,
                part.name,
                UploadedFile(
                    data=part.data,
                    filename=part.filename,
                    content_type=part.content_type,
                ),
            )
    return data


def decode_body(raw: bytes, content_type: Optional[str]) -> Any:
    mime = base_mime(content_type)
    if not mime or not raw:
        return {}

    family = MIME_TYPES.get(mime)

    if family is ContentType.json:
        return decode_json(raw)
    if family is ContentType.form:
        return decode_form(raw.decode("utf-8", errors="replace"))
    if family is ContentType.upload:
        return collect_fields(parse_multipart(raw, content_type))
    if family is ContentType.binary:
        return raw
    if family is ContentType.stream:
        return {
            "type": "stream",
            "data": raw.decode("utf-8", errors="replace"),
            "contentType": mime,
        }

    if mime.startswith("text/"):
        return {
            "type": "text",
            "data": raw.decode("utf-8", errors="replace"),
            "contentType": mime,
        }
    if is_media(mime):
        return {"type": "media", "data": raw, "contentType": mime}

    return {"type": "unknown", "data": raw, "contentType": mime}
