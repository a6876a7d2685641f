from covenant.config import Config, get_config
from covenant.contract import Contract, ContractMetadata, create_contract
from covenant.endpoint import Endpoint, EndpointBuilder, create_endpoint, endpoint
from covenant.errors import (
    DEFAULT_TAXONOMY,
    ContractConfigurationError,
    ErrorTaxonomy,
    HttpError,
)
from covenant.http import ContentType, UploadedFile
from covenant.logger import Logger, setup_logging
from covenant.middleware import MiddlewareContext, create_middleware
from covenant.router import RouterBuilder, RouterDefinition, create_router
from covenant.server import Context, Server
from covenant.transport import WebSocketBehavior

__all__ = [
    "Config",
    "ContentType",
    "Context",
    "Contract",
    "ContractConfigurationError",
    "ContractMetadata",
    "DEFAULT_TAXONOMY",
    "Endpoint",
    "EndpointBuilder",
    "ErrorTaxonomy",
    "HttpError",
    "Logger",
    "MiddlewareContext",
    "RouterBuilder",
    "RouterDefinition",
    "Server",
    "UploadedFile",
    "WebSocketBehavior",
    "create_contract",
    "create_endpoint",
    "create_middleware",
    "create_router",
    "endpoint",
    "get_config",
    "setup_logging",
]
