"""Custom exceptions for restsum."""


class RestSumError(Exception):
    """Base exception for restsum."""
    pass


class ConfigError(RestSumError):
    """Configuration and credential errors."""
    pass


class ScanError(RestSumError):
    """Directory scanning errors."""
    pass


class CacheError(RestSumError):
    """Summary cache storage errors."""
    pass


class AIError(RestSumError):
    """Text-generation service errors."""
    pass
