import traceback
from typing import Any, Dict, Literal, Optional, get_args, get_origin

from pydantic import BaseModel, ConfigDict

from covenant.errors.codes import (
    DEFAULT_TAXONOMY,
    HTTP_ERROR_CODES,
    HTTP_SERVICE_CODES,
    HTTP_SERVICE_ERROR_CODES,
    HTTP_SUCCESS_CODES,
    ErrorTaxonomy,
    is_error_status,
    is_success_status,
)


class ExceptionData(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)
    exc: Exception
    exc_type: str
    traceback: str

    @classmethod
    def make_exception_data(cls, exc: Exception) -> "ExceptionData":
        return cls(
            exc=exc,
            exc_type=type(exc).__name__,
            traceback="".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            ),
        )


class ErrorResponse(BaseModel):
    code: str
    message: str


class ContractConfigurationError(Exception):
    """Raised while building a contract that breaks the response invariants."""


class BaseError(Exception):
    status_code: int = 400
    code: str = "base_error"
    message: str = "Base error"
    details: Optional[Any] = None

    def __init__(
        self,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        message: Optional[str] = None,
        details: Optional[Any] = None,
    ):
        if status_code:
            self.status_code = status_code
        if code:
            self.code = code
        if message:
            self.message = message
        if details:
            self.details = details
        super().__init__(self.message)


class HttpError(BaseError):
    """Error value with a taxonomy-registered code.

    ``status`` must be the status the taxonomy assigns to ``code``; the
    constructor refuses any other pairing. Use :meth:`of` to let the
    taxonomy pick the status.
    """

    status_code: int = 500
    code: str = "ERR_INTERNAL_SERVER_ERROR"
    message: str = ""

    def __init__(
        self,
        status: int,
        code: str,
        text: Optional[str] = None,
        details: Optional[Any] = None,
        *,
        taxonomy: ErrorTaxonomy = DEFAULT_TAXONOMY,
    ):
        if code not in taxonomy:
            raise ValueError(f'Unknown error code "{code}"')
        expected = taxonomy.status_of(code)
        if expected != status:
            raise ValueError(
                f'Error code "{code}" maps to status {expected}, not {status}'
            )
        self.text = text
        super().__init__(status_code=status, code=code, message=text, details=details)

    @property
    def status(self) -> int:
        return self.status_code

    @classmethod
    def of(
        cls,
        code: str,
        text: Optional[str] = None,
        details: Optional[Any] = None,
        *,
        taxonomy: ErrorTaxonomy = DEFAULT_TAXONOMY,
    ) -> "HttpError":
        return cls(taxonomy.status_of(code), code, text, details, taxonomy=taxonomy)

    def __repr__(self) -> str:
        return f"HttpError(status={self.status_code}, code={self.code!r}, text={self.text!r})"


class RequestError(HttpError):
    """Raised by the framework itself while reading or checking the request.

    These are answered at their own status whatever the contract declares
    there, since the handler never got to choose them.
    """


class BodyDecodeError(RequestError):
    def __init__(self, text: str):
        super().__init__(400, "ERR_MALFORMED_BODY", text)


class ContentTypeError(RequestError):
    def __init__(self, text: str):
        super().__init__(400, "ERR_INVALID_CONTENT_TYPE", text)


class RequestValidationError(RequestError):
    def __init__(self, code: str, text: str, details: Optional[Any] = None):
        super().__init__(402, code, text, details)


def validate_error_schema(
    code: str,
    schema: Any,
    status: int,
    taxonomy: ErrorTaxonomy = DEFAULT_TAXONOMY,
) -> None:
    if code not in taxonomy:
        raise ContractConfigurationError(
            f'Invalid error code "{code}". Must be one of the taxonomy codes.'
        )

    if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
        raise ContractConfigurationError(
            f'Error schema for "{code}" must be a pydantic model'
        )

    fields = schema.model_fields
    annotation = fields["code"].annotation if "code" in fields else None
    if (
        set(fields) != {"code"}
        or get_origin(annotation) is not Literal
        or get_args(annotation) != (code,)
    ):
        raise ContractConfigurationError(
            f'Error response for "{code}" must be {{code: Literal["{code}"]}}'
        )

    expected = taxonomy.status_of(code)
    if expected != status or not is_error_status(status):
        raise ContractConfigurationError(
            f'Error response for "{code}" is keyed by {status}, '
            f"but the code maps to {expected}"
        )


def make_error_content(
    code: str,
    message: str,
    exception_data: Optional[ExceptionData] = None,
    debug: bool = False,
) -> Dict:
    content: Dict[str, Any] = ErrorResponse(code=code, message=message).model_dump()

    if debug and exception_data is not None:
        content["exception_data"] = {
            "type": exception_data.exc_type,
            "text": str(exception_data.exc),
            "traceback": exception_data.traceback,
        }

    return content


__all__ = [
    "BaseError",
    "BodyDecodeError",
    "ContentTypeError",
    "ContractConfigurationError",
    "DEFAULT_TAXONOMY",
    "ErrorResponse",
    "ErrorTaxonomy",
    "ExceptionData",
    "HTTP_ERROR_CODES",
    "HTTP_SERVICE_CODES",
    "HTTP_SERVICE_ERROR_CODES",
    "HTTP_SUCCESS_CODES",
    "HttpError",
    "RequestError",
    "RequestValidationError",
    "is_error_status",
    "is_success_status",
    "make_error_content",
    "validate_error_schema",
]
