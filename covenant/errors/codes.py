from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping

HTTP_SUCCESS_CODES: Mapping[str, int] = MappingProxyType(
    {
        "CONTINUE": 100,
        "SWITCHING_PROTOCOLS": 101,
        "PROCESSING": 102,
        "EARLY_HINTS": 103,
        "OK": 200,
        "CREATED": 201,
        "ACCEPTED": 202,
        "NON_AUTHORITATIVE_INFORMATION": 203,
        "NO_CONTENT": 204,
        "RESET_CONTENT": 205,
        "PARTIAL_CONTENT": 206,
        "MULTI_STATUS": 207,
        "MULTIPLE_CHOICES": 300,
        "MOVED_PERMANENTLY": 301,
        "MOVED_TEMPORARILY": 302,
        "SEE_OTHER": 303,
        "NOT_MODIFIED": 304,
        "USE_PROXY": 305,
        "TEMPORARY_REDIRECT": 307,
        "PERMANENT_REDIRECT": 308,
    }
)

HTTP_ERROR_CODES: Mapping[str, int] = MappingProxyType(
    {
        "BAD_REQUEST": 400,
        "UNAUTHORIZED": 401,
        "PAYMENT_REQUIRED": 402,
        "FORBIDDEN": 403,
        "NOT_FOUND": 404,
        "METHOD_NOT_ALLOWED": 405,
        "NOT_ACCEPTABLE": 406,
        "PROXY_AUTHENTICATION_REQUIRED": 407,
        "REQUEST_TIMEOUT": 408,
        "CONFLICT": 409,
        "GONE": 410,
        "LENGTH_REQUIRED": 411,
        "PRECONDITION_FAILED": 412,
        "REQUEST_TOO_LONG": 413,
        "REQUEST_URI_TOO_LONG": 414,
        "UNSUPPORTED_MEDIA_TYPE": 415,
        "REQUESTED_RANGE_NOT_SATISFIABLE": 416,
        "EXPECTATION_FAILED": 417,
        "IM_A_TEAPOT": 418,
        "INSUFFICIENT_SPACE_ON_RESOURCE": 419,
        "METHOD_FAILURE": 420,
        "MISDIRECTED_REQUEST": 421,
        "UNPROCESSABLE_ENTITY": 422,
        "LOCKED": 423,
        "FAILED_DEPENDENCY": 424,
        "UPGRADE_REQUIRED": 426,
        "PRECONDITION_REQUIRED": 428,
        "TOO_MANY_REQUESTS": 429,
        "REQUEST_HEADER_FIELDS_TOO_LARGE": 431,
        "UNAVAILABLE_FOR_LEGAL_REASONS": 451,
        "INTERNAL_SERVER_ERROR": 500,
        "NOT_IMPLEMENTED": 501,
        "BAD_GATEWAY": 502,
        "SERVICE_UNAVAILABLE": 503,
        "GATEWAY_TIMEOUT": 504,
        "HTTP_VERSION_NOT_SUPPORTED": 505,
        "INSUFFICIENT_STORAGE": 507,
        "NETWORK_AUTHENTICATION_REQUIRED": 511,
    }
)

# Коды конкретного сервиса, статус берется из таблицы
HTTP_SERVICE_CODES: Mapping[str, int] = MappingProxyType(
    {
        "ERR_INVALID_SESSION_ID": 400,
        "ERR_INVALID_ID_TYPE_ID": 400,
        "ERR_INTERNAL_SERVER_ERROR": 500,
        "ERR_INVALID_OFFER_ID": 400,
        "ERR_INVALID_CONTENT_TYPE": 400,
        "ERR_RESPONSE_VALIDATION": 500,
        "ERR_REF_ID_NOT_FOUND": 404,
        "ERR_FROM_LINECHECK_API": 500,
        "ERR_FROM_PDF_API": 500,
        "ERR_VALIDATION_QUERY": 402,
        "ERR_VALIDATION_PARAMS": 402,
        "ERR_VALIDATION_HEADERS": 402,
        "ERR_VALIDATION_BODY": 402,
        "ERR_MALFORMED_BODY": 400,
    }
)

HTTP_SERVICE_ERROR_CODES: Mapping[str, int] = MappingProxyType(
    {**HTTP_ERROR_CODES, **HTTP_SERVICE_CODES}
)


def is_success_status(code: int) -> bool:
    return 100 <= code < 400


def is_error_status(code: int) -> bool:
    return 400 <= code < 600


class ErrorTaxonomy:
    """Immutable ``error code -> HTTP status`` table.

    A taxonomy is built once at startup and passed to contracts and the
    server. ``extend`` never mutates the receiver, it returns a new table.
    """

    __slots__ = ("_codes",)

    def __init__(self, codes: Mapping[str, int]):
        for code, status in codes.items():
            if not is_error_status(status):
                raise ValueError(
                    f'Error code "{code}" maps to {status}, which is not an error status'
                )
        self._codes: Mapping[str, int] = MappingProxyType(dict(codes))

    @property
    def codes(self) -> Mapping[str, int]:
        return self._codes

    def status_of(self, code: str) -> int:
        try:
            return self._codes[code]
        except KeyError:
            raise KeyError(f'Unknown error code "{code}"') from None

    def codes_for(self, status: int) -> List[str]:
        return [code for code, value in self._codes.items() if value == status]

    def extend(self, codes: Mapping[str, int]) -> "ErrorTaxonomy":
        merged: Dict[str, int] = dict(self._codes)
        for code, status in codes.items():
            current = merged.get(code)
            if current is not None and current != status:
                raise ValueError(
                    f'Error code "{code}" is already mapped to {current}, got {status}'
                )
            merged[code] = status
        return ErrorTaxonomy(merged)

    def __contains__(self, code: object) -> bool:
        return code in self._codes

    def __iter__(self) -> Iterator[str]:
        return iter(self._codes)

    def __len__(self) -> int:
        return len(self._codes)

    def __repr__(self) -> str:
        return f"ErrorTaxonomy({len(self._codes)} codes)"


DEFAULT_TAXONOMY = ErrorTaxonomy(HTTP_SERVICE_ERROR_CODES)
