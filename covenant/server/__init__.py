from covenant.server.context import Context
from covenant.server.instance import Server
from covenant.server.validator import resolve_response, validate_request

__all__ = ["Context", "Server", "resolve_response", "validate_request"]
