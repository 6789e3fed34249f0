from .errors import (
    market_desk_error_handler,
    register_api_error_handlers,
    request_validation_error_handler,
    source_error_as_api_error,
)

__all__ = [
    "market_desk_error_handler",
    "register_api_error_handlers",
    "request_validation_error_handler",
    "source_error_as_api_error",
]
