"""crux core exception classes."""

from typing import Any


class CruxError(Exception):
    """Base class for every error raised by crux."""

    def __init__(
        self,
        message: str,
        error_code: str = "GENERAL_ERROR",
        details: dict[str, Any] | None = None,
    ):
        """Initialise the error.

        Args:
            message: human readable message
            error_code: stable machine readable code
            details: extra context attached to the error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(CruxError):
    """Invalid configuration value."""

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if setting:
            super_details["setting"] = setting
        super().__init__(message, "CONFIG_ERROR", super_details)
        self.setting = setting


class CacheError(CruxError):
    """Cache related failure."""

    def __init__(
        self,
        message: str,
        data_type: str | None = None,
        key: str | None = None,
        error_code: str = "CACHE_ERROR",
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if data_type:
            super_details["data_type"] = data_type
        if key:
            super_details["key"] = key
        super().__init__(message, error_code, super_details)
        self.data_type = data_type
        self.key = key


class UnknownDataTypeError(CacheError):
    """The data type tag has no registered cache policy."""

    def __init__(self, data_type: str, details: dict[str, Any] | None = None):
        super().__init__(
            f"unknown cache data type: {data_type}",
            data_type=data_type,
            error_code="UNKNOWN_DATA_TYPE",
            details=details,
        )


class CacheSerializationError(CacheError):
    """A value could not be encoded to or decoded from JSON."""

    def __init__(
        self,
        message: str,
        data_type: str | None = None,
        key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, data_type, key, "CACHE_SERIALIZATION_ERROR", details)


class StoreUnavailableError(CacheError):
    """The backing store failed to serve a request."""

    def __init__(
        self,
        message: str,
        data_type: str | None = None,
        key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, data_type, key, "STORE_UNAVAILABLE", details)


class CacheTimeoutError(CacheError):
    """A cache operation exceeded its deadline and was interrupted."""

    def __init__(
        self,
        message: str,
        data_type: str | None = None,
        key: str | None = None,
        timeout: float | None = None,
        details: dict[str, Any] | None = None,
    ):
        super_details = details or {}
        if timeout is not None:
            super_details["timeout"] = timeout
        super().__init__(message, data_type, key, "CACHE_TIMEOUT", super_details)
        self.timeout = timeout
