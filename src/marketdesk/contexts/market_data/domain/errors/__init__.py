from .source_errors import (
    ErrorKind,
    MalformedResponseError,
    SourceConfigurationError,
    SourceError,
    SourceUnavailableError,
    error_kind_of,
)

__all__ = [
    "ErrorKind",
    "MalformedResponseError",
    "SourceConfigurationError",
    "SourceError",
    "SourceUnavailableError",
    "error_kind_of",
]
