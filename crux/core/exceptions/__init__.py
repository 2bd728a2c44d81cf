"""Exception handling module."""

from crux.core.exceptions.base import (
    CacheError,
    CacheSerializationError,
    CacheTimeoutError,
    ConfigurationError,
    CruxError,
    StoreUnavailableError,
    UnknownDataTypeError,
)

__all__ = [
    "CruxError",
    "ConfigurationError",
    "CacheError",
    "UnknownDataTypeError",
    "CacheSerializationError",
    "StoreUnavailableError",
    "CacheTimeoutError",
]
