"""Checks inputs against a contract on the way in and picks the response on the way out."""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from covenant.contract import INPUT_KEYS, Contract
from covenant.errors import (
    ExceptionData,
    HttpError,
    RequestError,
    RequestValidationError,
    make_error_content,
)
from covenant.http.content_type import ContentType
from covenant.http.request import HttpRequest
from covenant.http.response import HttpResponse
from covenant.logger import Logger

NO_MATCH_CODE = "ERR_RESPONSE_VALIDATION"
NO_MATCH_MESSAGE = "Response does not match any declared shape."
ERROR_MISMATCH_MESSAGE = "Response validation failed."


def first_issue(exc: ValidationError) -> str:
    errors = exc.errors(include_url=False)
    if not errors:
        return str(exc)
    error = errors[0]
    loc = ".".join(str(part) for part in error["loc"]) or "<root>"
    return f"{loc}: {error['msg']}"


async def collect_inputs(contract: Contract, request: HttpRequest) -> Dict[str, Any]:
    """Gather the declared inputs of ``contract`` from ``request``.

    The body is read only when the contract declares one. Uploaded files
    are merged into the multipart fields so a single shape covers both.
    """
    inputs: Dict[str, Any] = {}
    if contract.query is not None:
        inputs["query"] = request.query
    if contract.params is not None:
        inputs["params"] = request.params
    if contract.headers is not None:
        inputs["headers"] = request.headers
    if contract.body is not None:
        body = await request.body()
        if request.content_type is ContentType.upload:
            body = {**body, **(await request.files())}
        inputs["body"] = body
    return inputs


def validate_request(
    contract: Contract, inputs: Dict[str, Any], request_id: str
) -> Dict[str, BaseModel]:
    """Validate every declared input, then fail on the first broken one.

    Fields are checked in ``query``, ``params``, ``headers``, ``body`` order.
    The raised error carries the issues of every failing field in
    ``details``.
    """
    validated: Dict[str, BaseModel] = {}
    failures: Dict[str, List[Dict[str, Any]]] = {}
    first: Optional[Tuple[str, ValidationError]] = None

    for key in INPUT_KEYS:
        model = getattr(contract, key)
        if model is None:
            continue
        try:
            validated[key] = model.model_validate(inputs.get(key, {}))
        except ValidationError as exc:
            failures[key] = exc.errors(include_url=False, include_context=False)
            if first is None:
                first = (key, exc)

    if first is not None:
        key, exc = first
        raise RequestValidationError(
            f"ERR_VALIDATION_{key.upper()}",
            f"Invalid {key}: {first_issue(exc)}",
            details={"request_id": request_id, "errors": failures},
        )

    return validated


def _emit(response: HttpResponse, status: int, content: Any) -> None:
    response.status(status).json(content)


def resolve_error(
    contract: Contract,
    response: HttpResponse,
    error: HttpError,
    *,
    validate: bool,
    logger: Logger,
    request_id: str,
    debug: bool = False,
    cause: Optional[Exception] = None,
) -> None:
    entry = contract.responses.get(error.status)
    if entry is not None and validate and not isinstance(error, RequestError):
        try:
            entry.model.model_validate({"code": error.code, "message": error.message})
        except ValidationError as exc:
            logger.error(
                f"[{request_id}] {error.code} does not match the declared "
                f"{error.status} response: {first_issue(exc)}",
                extra={"request_id": request_id},
            )
            _emit(
                response,
                500,
                make_error_content("ERR_INTERNAL_SERVER_ERROR", ERROR_MISMATCH_MESSAGE),
            )
            return

    exception_data = (
        ExceptionData.make_exception_data(cause) if debug and cause is not None else None
    )
    _emit(
        response,
        error.status,
        make_error_content(error.code, error.message, exception_data, debug),
    )


def resolve_success(
    contract: Contract,
    response: HttpResponse,
    value: Any,
    *,
    validate: bool,
    logger: Logger,
    request_id: str,
) -> None:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True)

    tried: List[str] = []
    for entry in contract.success_entries:
        try:
            checked = entry.model.model_validate(value)
        except ValidationError as exc:
            tried.append(f"{entry.status} ({first_issue(exc)})")
            continue

        body = checked.model_dump(mode="json", by_alias=True) if validate else value
        _emit(response, entry.status, body)
        return

    logger.error(
        f"[{request_id}] {contract.method.upper()} {contract.path} returned a value "
        f"matching none of its responses: {'; '.join(tried) or 'no success responses declared'}",
        extra={"request_id": request_id},
    )
    _emit(response, 500, make_error_content(NO_MATCH_CODE, NO_MATCH_MESSAGE))


def resolve_response(
    contract: Contract,
    response: HttpResponse,
    value: Any,
    *,
    validate: bool,
    logger: Logger,
    request_id: str,
    debug: bool = False,
    cause: Optional[Exception] = None,
) -> None:
    """Turn a handler outcome into exactly one status and body on ``response``.

    An :class:`HttpError` goes to the entry registered at its status; any
    other value is matched against the success entries in ascending status
    order and the first accepting shape wins. A value nothing accepts
    becomes a 500.
    """
    if isinstance(value, HttpError):
        resolve_error(
            contract,
            response,
            value,
            validate=validate,
            logger=logger,
            request_id=request_id,
            debug=debug,
            cause=cause,
        )
        return

    resolve_success(
        contract,
        response,
        value,
        validate=validate,
        logger=logger,
        request_id=request_id,
    )


__all__ = [
    "NO_MATCH_CODE",
    "NO_MATCH_MESSAGE",
    "collect_inputs",
    "first_issue",
    "resolve_error",
    "resolve_response",
    "resolve_success",
    "validate_request",
]
