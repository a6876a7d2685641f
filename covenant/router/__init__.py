from dataclasses import dataclass
from typing import List, Sequence, Tuple

from covenant.middleware import Middleware


@dataclass(frozen=True)
class RouterDefinition:
    middlewares: Tuple[Middleware, ...] = ()
    base_path: str = ""


class RouterBuilder:
    """Shared middlewares and path prefix for a group of endpoints."""

    def __init__(self) -> None:
        self._middlewares: List[Middleware] = []
        self._base_path = ""

    def middlewares(self, middlewares: Sequence[Middleware]) -> "RouterBuilder":
        self._middlewares = list(middlewares)
        return self

    def base(self, path: str) -> "RouterBuilder":
        if path and not path.startswith("/"):
            raise ValueError(f'Base path "{path}" must start with "/"')
        self._base_path = path.rstrip("/")
        return self

    def build(self) -> RouterDefinition:
        return RouterDefinition(
            middlewares=tuple(self._middlewares),
            base_path=self._base_path,
        )


def create_router() -> RouterBuilder:
    return RouterBuilder()


__all__ = ["RouterBuilder", "RouterDefinition", "create_router"]
