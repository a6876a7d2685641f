"""Declarative route contracts.

A contract names the method and path of a route, the shapes of its inputs
and every response it may produce: success shapes keyed by status, and
error entries derived from the declared error codes. Contracts are built
once at startup and shared read-only by all requests of the route.
"""

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    Union,
)

from pydantic import BaseModel, ConfigDict

from covenant.contract.shapes import (
    Shape,
    compile_shape,
    error_shape,
    model_name,
    shape_keys,
)
from covenant.errors import (
    DEFAULT_TAXONOMY,
    ContractConfigurationError,
    ErrorTaxonomy,
    is_success_status,
    validate_error_schema,
)
from covenant.http.content_type import ContentType

logger = logging.getLogger(__name__)

METHODS = ("get", "post", "put", "patch", "delete", "options", "head")
METHODS_WITH_BODY = frozenset({"post", "put", "patch"})
INPUT_KEYS = ("query", "params", "headers", "body")

_PARAM_RE = re.compile(r":(\w+)")


def parse_param_keys(path: str) -> List[str]:
    return _PARAM_RE.findall(path)


class ContractMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    tags: Tuple[str, ...] = ()
    summary: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class ResponseEntry:
    status: int
    model: Type[BaseModel]
    code: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.code is not None


@dataclass(frozen=True, eq=False)
class Contract:
    method: str
    path: str
    responses: Mapping[int, ResponseEntry]
    content_type: Optional[ContentType] = None
    query: Optional[Type[BaseModel]] = None
    params: Optional[Type[BaseModel]] = None
    headers: Optional[Type[BaseModel]] = None
    body: Optional[Type[BaseModel]] = None
    docs: ContractMetadata = field(default_factory=ContractMetadata)

    @property
    def success_entries(self) -> Tuple[ResponseEntry, ...]:
        """Success entries in ascending status order, the order they are matched in."""
        return tuple(
            entry
            for status, entry in sorted(self.responses.items())
            if not entry.is_error
        )

    @property
    def error_entries(self) -> Tuple[ResponseEntry, ...]:
        return tuple(
            entry for _, entry in sorted(self.responses.items()) if entry.is_error
        )

    @property
    def error_codes(self) -> List[str]:
        return [entry.code for entry in self.error_entries]

    @property
    def param_keys(self) -> List[str]:
        return parse_param_keys(self.path)


def _normalize_codes(errors: Union[str, Iterable[str], None]) -> List[str]:
    if errors is None:
        return []
    if isinstance(errors, str):
        return [errors]
    return list(errors)


def create_contract(
    *,
    method: str,
    path: str,
    inputs: Optional[Mapping[str, Shape]] = None,
    output: Optional[Mapping[int, Shape]] = None,
    errors: Union[str, Iterable[str], None] = None,
    content_type: Union[ContentType, str, None] = None,
    docs: Union[ContractMetadata, Mapping[str, Any], None] = None,
    taxonomy: ErrorTaxonomy = DEFAULT_TAXONOMY,
) -> Contract:
    method = method.lower()
    if method == "del":
        method = "delete"
    if method not in METHODS:
        raise ContractConfigurationError(f'Unsupported method "{method}"')
    if not path.startswith("/"):
        raise ContractConfigurationError(f'Path "{path}" must start with "/"')

    inputs = dict(inputs or {})
    unknown = sorted(set(inputs) - set(INPUT_KEYS))
    if unknown:
        raise ContractConfigurationError(
            f"{method.upper()} {path}: unknown input keys {unknown}"
        )

    if method not in METHODS_WITH_BODY and (
        inputs.get("body") is not None or content_type is not None
    ):
        raise ContractConfigurationError(
            f"{method.upper()} {path}: only POST, PUT and PATCH accept a body"
        )

    if isinstance(inputs.get("headers"), Mapping):
        # header names arrive lowercased
        inputs["headers"] = {
            key.lower(): value for key, value in inputs["headers"].items()
        }

    models = {
        key: compile_shape(model_name(method, path, key), inputs.get(key))
        for key in INPUT_KEYS
    }

    param_keys = parse_param_keys(path)
    if models["params"] is not None and set(shape_keys(models["params"])) != set(
        param_keys
    ):
        raise ContractConfigurationError(
            f"{method.upper()} {path}: params shape must declare exactly {param_keys}"
        )

    responses: Dict[int, ResponseEntry] = {}

    for key, shape in (output or {}).items():
        status = int(key)
        if not is_success_status(status):
            raise ContractConfigurationError(
                f"{method.upper()} {path}: output status {status} is not a success "
                f"status, declare errors through error codes"
            )
        responses[status] = ResponseEntry(
            status=status,
            model=compile_shape(model_name(method, path, f"response{status}"), shape),
        )

    for code in _normalize_codes(errors):
        if code not in taxonomy:
            raise ContractConfigurationError(
                f'Invalid error code "{code}". Must be one of the taxonomy codes.'
            )
        status = taxonomy.status_of(code)
        schema = error_shape(code)
        validate_error_schema(code, schema, status, taxonomy)

        previous = responses.get(status)
        if previous is not None:
            # later codes win on a shared status
            logger.debug(
                f"{method.upper()} {path}: {code} replaces {previous.code} at {status}"
            )
        responses[status] = ResponseEntry(status=status, model=schema, code=code)

    if isinstance(docs, Mapping):
        docs = ContractMetadata(**docs)

    return Contract(
        method=method,
        path=path,
        responses=MappingProxyType(dict(sorted(responses.items()))),
        content_type=ContentType(content_type) if content_type is not None else None,
        query=models["query"],
        params=models["params"],
        headers=models["headers"],
        body=models["body"],
        docs=docs or ContractMetadata(),
    )


__all__ = [
    "Contract",
    "ContractMetadata",
    "INPUT_KEYS",
    "METHODS",
    "METHODS_WITH_BODY",
    "ResponseEntry",
    "Shape",
    "create_contract",
    "parse_param_keys",
]
