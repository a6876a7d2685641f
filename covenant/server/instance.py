import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from dishka import Container

from covenant.config import Config
from covenant.contract import parse_param_keys
from covenant.endpoint import Endpoint
from covenant.errors import DEFAULT_TAXONOMY, ErrorTaxonomy, HttpError
from covenant.http.request import HttpRequest
from covenant.http.response import HttpResponse
from covenant.ioc import make_ioc
from covenant.logger import Logger
from covenant.middleware import middleware_name, run_middlewares
from covenant.server.context import Context
from covenant.server.validator import (
    collect_inputs,
    resolve_response,
    validate_request,
)
from covenant.transport import (
    ConnectionAborted,
    Transport,
    TransportRequest,
    TransportResponse,
    WebSocketBehavior,
)
from covenant.transport.asgi import AsgiTransport

INTERNAL_ERROR_TEXT = "Internal server error"


class Server:
    """Binds endpoints to a transport and runs the request pipeline.

    Per request: middlewares, optional input validation, the handler, then
    response resolution. Every failure on the way is funneled into the
    resolver's error path, and the transport response is written once,
    unless the peer has disconnected first.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        transport: Optional[Transport] = None,
        taxonomy: ErrorTaxonomy = DEFAULT_TAXONOMY,
        container: Optional[Container] = None,
    ):
        self._container = container or make_ioc(config)
        self.config = self._container.get(Config)
        self.logger = self._container.get(Logger)
        self.transport = transport or AsgiTransport(host=self.config.HOST)
        self.taxonomy = taxonomy
        self.endpoints: List[Endpoint] = []

    @property
    def app(self) -> Any:
        app = getattr(self.transport, "app", None)
        if app is None:
            raise AttributeError(
                f"{type(self.transport).__name__} does not expose an ASGI app"
            )
        return app

    def register(self, endpoint: Endpoint) -> "Server":
        contract = endpoint.contract
        path = endpoint.path
        # placeholders of the router base come first
        param_keys = parse_param_keys(path)

        description = contract.docs.summary or contract.docs.description
        self.logger.info(
            f"{contract.method.upper()} {path}"
            + (f" [{description}]" if description else "")
        )
        if endpoint.middlewares:
            names = ", ".join(middleware_name(mw) for mw in endpoint.middlewares)
            self.logger.debug(f"  middlewares: {names}")

        async def callback(res: TransportResponse, req: TransportRequest) -> None:
            await self._handle(endpoint, path, param_keys, res, req)

        self.transport.add_route(contract.method, path, callback)
        self.endpoints.append(endpoint)
        return self

    def ws(self, pattern: str, behavior: WebSocketBehavior) -> "Server":
        self.logger.info(f"WS {pattern}")
        self.transport.add_ws(pattern, behavior)
        return self

    def register_all(self, endpoints: Sequence[Endpoint]) -> "Server":
        for endpoint in endpoints:
            self.register(endpoint)
        return self

    async def listen(
        self,
        port: Optional[int] = None,
        callback: Optional[Callable[[], Optional[Awaitable[None]]]] = None,
    ) -> bool:
        port = self.config.PORT if port is None else port
        listening = await self.transport.listen(port, callback)
        if not listening:
            self.logger.error(f"Failed to listen on port {port}")
        return listening

    def close(self) -> None:
        self._container.close()

    async def _handle(
        self,
        endpoint: Endpoint,
        path: str,
        param_keys: List[str],
        res: TransportResponse,
        req: TransportRequest,
    ) -> None:
        request_id = uuid4().hex[:12]
        extra = {"request_id": request_id}
        aborted = False

        def on_aborted() -> None:
            nonlocal aborted
            aborted = True

        res.on_aborted(on_aborted)
        started = time.perf_counter()

        request = HttpRequest(req, path, param_keys, endpoint.contract.content_type)
        response = HttpResponse(self.taxonomy)
        self.logger.debug(
            f"[{request_id}] -> {request.method.upper()} {request.url}", extra=extra
        )

        try:
            await self._run(endpoint, request, response, request_id)
        except ConnectionAborted:
            aborted = True
        except Exception as exc:
            # the resolver itself failed; the buffer may hold a half-built response
            self.logger.error(
                f"[{request_id}] failed to build a response: {exc}",
                exc_info=exc,
                extra=extra,
            )
            response = HttpResponse(self.taxonomy).error(
                "ERR_INTERNAL_SERVER_ERROR", INTERNAL_ERROR_TEXT
            )

        if aborted:
            self.logger.warn(
                f"[{request_id}] client disconnected, response dropped", extra=extra
            )
            return

        try:
            async with res.cork():
                res.write_status(response.status_code or 200)
                for name, value in response.headers.items():
                    res.write_header(name, value)
                await res.end(response.body or b"")
        except Exception as exc:
            self.logger.error(
                f"[{request_id}] failed to write the response: {exc}",
                exc_info=exc,
                extra=extra,
            )
            return

        elapsed = (time.perf_counter() - started) * 1000
        self.logger.info(
            f"[{request_id}] <- {response.status_code or 200} ({elapsed:.1f} ms)",
            extra=extra,
        )

    async def _run(
        self,
        endpoint: Endpoint,
        request: HttpRequest,
        response: HttpResponse,
        request_id: str,
    ) -> None:
        contract = endpoint.contract
        data: Dict[str, Any] = {}
        resolve = dict(
            validate=self.config.VALIDATE_RESPONSE,
            logger=self.logger,
            request_id=request_id,
        )

        try:
            await run_middlewares(endpoint.middlewares, request, data)
            if self.config.VALIDATE_REQUEST:
                validate_request(
                    contract, await collect_inputs(contract, request), request_id
                )
            ctx = Context(
                request,
                response,
                data,
                request_id=request_id,
                logger=self.logger,
                taxonomy=self.taxonomy,
            )
            result = await endpoint.handler(ctx)
        except ConnectionAborted:
            raise
        except Exception as exc:
            error = self._normalize(exc, request_id)
            resolve_response(
                contract,
                response,
                error,
                debug=self.config.DEBUG,
                cause=exc,
                **resolve,
            )
            return

        if result is ctx:
            result = None
        if result is None and response.has_body:
            # written by hand through the context
            return

        resolve_response(contract, response, result, **resolve)

    def _normalize(self, exc: Exception, request_id: str) -> HttpError:
        extra = {"request_id": request_id}
        if isinstance(exc, HttpError):
            if exc.status >= 500:
                self.logger.error(
                    f"[{request_id}] {exc.code}: {exc.message}", exc_info=exc, extra=extra
                )
            else:
                self.logger.info(
                    f"[{request_id}] {exc.code}: {exc.message}", extra=extra
                )
            if exc.details is not None:
                self.logger.debug(f"[{request_id}] details: {exc.details}", extra=extra)
            return exc

        self.logger.error(
            f"[{request_id}] unhandled {type(exc).__name__}: {exc}",
            exc_info=exc,
            extra=extra,
        )
        return HttpError.of(
            "ERR_INTERNAL_SERVER_ERROR", INTERNAL_ERROR_TEXT, taxonomy=self.taxonomy
        )
