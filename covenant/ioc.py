from typing import Iterator, Optional, Self

from dishka import Container, Provider, Scope, make_container, provide

from covenant.config import Config, get_config
from covenant.logger import Logger


class CoreDepsProvider(Provider):
    def __init__(self, config: Optional[Config] = None):
        super().__init__()
        self._config = config

    @provide(scope=Scope.APP)
    def get_config(self: Self) -> Config:
        return self._config or get_config()

    @provide(scope=Scope.APP)
    def get_logger(self: Self, config: Config) -> Iterator[Logger]:
        logger = Logger(f"covenant.{config.SERVICE_NAME}")
        yield logger
        logger.dispose()


def make_ioc(config: Optional[Config] = None) -> Container:
    return make_container(CoreDepsProvider(config))
