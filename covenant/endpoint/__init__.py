from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from covenant.contract import Contract
from covenant.middleware import Middleware
from covenant.router import RouterDefinition

if TYPE_CHECKING:
    from covenant.server.context import Context

Handler = Callable[["Context"], Awaitable[Any]]


@dataclass(frozen=True)
class Endpoint:
    contract: Contract
    handler: Handler
    middlewares: Tuple[Middleware, ...] = ()
    base_path: str = ""

    @property
    def path(self) -> str:
        return f"{self.base_path}{self.contract.path}"


class EndpointBuilder:
    def __init__(self, contract: Contract):
        self._contract = contract
        self._middlewares: List[Middleware] = []
        self._base_path = ""

    @property
    def contract(self) -> Contract:
        return self._contract

    @property
    def middlewares(self) -> Tuple[Middleware, ...]:
        return tuple(self._middlewares)

    def use(
        self, middleware: Union[Middleware, Sequence[Middleware]]
    ) -> "EndpointBuilder":
        """Append one middleware or a list of them, keeping their order."""
        if isinstance(middleware, (list, tuple)):
            self._middlewares.extend(middleware)
        else:
            self._middlewares.append(middleware)
        return self

    def router(self, router: RouterDefinition) -> "EndpointBuilder":
        self._middlewares.extend(router.middlewares)
        self._base_path = router.base_path
        return self

    def handler(self, fn: Handler) -> Endpoint:
        """Finish the endpoint. Works as a decorator too::

            @endpoint(get_user_contract).use(auth()).handler
            async def get_user(ctx): ...
        """
        return Endpoint(
            contract=self._contract,
            handler=fn,
            middlewares=tuple(self._middlewares),
            base_path=self._base_path,
        )


def endpoint(contract: Contract) -> EndpointBuilder:
    return EndpointBuilder(contract)


def create_endpoint(
    *,
    contract: Contract,
    handler: Handler,
    middlewares: Optional[Union[Middleware, Sequence[Middleware]]] = None,
) -> Endpoint:
    builder = EndpointBuilder(contract)
    if middlewares:
        builder.use(middlewares)
    return builder.handler(handler)


__all__ = ["Endpoint", "EndpointBuilder", "Handler", "create_endpoint", "endpoint"]
