from dataclasses import dataclass
from types import MappingProxyType
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Mapping,
    Optional,
    Sequence,
)

from covenant.contract.shapes import Shape, compile_shape
from covenant.http.request import HttpRequest


@dataclass(frozen=True)
class MiddlewareContext:
    headers: Mapping[str, str]
    query: Mapping[str, Any]
    url: str
    params: Mapping[str, str]
    data: Mapping[str, Any]


Middleware = Callable[[MiddlewareContext], Awaitable[Optional[Mapping[str, Any]]]]


def middleware_name(middleware: Any) -> str:
    return getattr(middleware, "__name__", type(middleware).__name__)


async def run_middlewares(
    middlewares: Sequence[Middleware],
    request: HttpRequest,
    data: Dict[str, Any],
) -> Dict[str, Any]:
    """Run ``middlewares`` one after another, merging each output into ``data``.

    Every step sees a read-only snapshot of everything merged so far.
    Merging is shallow, later keys overwrite earlier ones. An exception
    stops the chain and propagates to the caller.
    """
    for middleware in middlewares:
        ctx = MiddlewareContext(
            headers=request.headers,
            query=request.query,
            url=request.url,
            params=request.params,
            data=MappingProxyType(dict(data)),
        )
        output = await middleware(ctx)
        if output is None:
            continue
        if not isinstance(output, Mapping):
            raise TypeError(
                f"Middleware {middleware_name(middleware)} returned "
                f"{type(output).__name__}, expected a mapping"
            )
        data.update(output)

    return data


def create_middleware(
    handler: Callable[[MiddlewareContext, Any], Awaitable[Optional[Mapping[str, Any]]]],
    *,
    options: Optional[Shape] = None,
    output: Optional[Shape] = None,
    name: Optional[str] = None,
) -> Callable[..., Middleware]:
    """Wrap ``handler`` into a middleware factory.

    The factory takes the middleware options as keyword arguments and checks
    them against ``options`` right away, so a misconfigured middleware fails
    at startup. When ``output`` is given, every result is checked against it
    before it gets merged.

    Example::

        auth = create_middleware(check_token, options={"realm": str}, output={"user": User})
        endpoint(contract).use(auth(realm="api"))
    """
    name = name or handler.__name__
    options_model = compile_shape(f"{name}_options", options)
    output_model = compile_shape(f"{name}_output", output)

    def factory(**opts: Any) -> Middleware:
        parsed = options_model.model_validate(opts) if options_model else opts

        async def middleware(ctx: MiddlewareContext) -> Optional[Mapping[str, Any]]:
            result = await handler(ctx, parsed)
            if output_model is None:
                return result
            checked = output_model.model_validate(result or {})
            return {key: getattr(checked, key) for key in output_model.model_fields}

        middleware.__name__ = name
        return middleware

    return factory


__all__ = [
    "Middleware",
    "MiddlewareContext",
    "create_middleware",
    "middleware_name",
    "run_middlewares",
]
