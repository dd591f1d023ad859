"""Configuration management for restsum."""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import List, Mapping, Optional

import yaml

from restsum.ai import DEFAULT_MODEL
from restsum.cache import default_cache_dir
from restsum.exceptions import ConfigError
from restsum.summarizer import (
    BATCH_SIZE,
    MAX_CONCURRENCY,
    MAX_OUTPUT_TOKENS,
    REQUEST_INTERVAL,
    TEMPERATURE,
)


def default_config_path() -> Path:
    return Path.home() / ".restsum" / "config.yaml"


@dataclass
class AIConfig:
    provider: str = "anthropic"
    model: str = DEFAULT_MODEL
    api_key_env: str = "ANTHROPIC_API_KEY"
    api_key: str = ""
    temperature: float = TEMPERATURE
    max_tokens: int = MAX_OUTPUT_TOKENS


@dataclass
class SummaryConfig:
    batch_size: int = BATCH_SIZE
    max_concurrency: int = MAX_CONCURRENCY
    request_interval: float = REQUEST_INTERVAL
    timeout: float = 300.0


@dataclass
class CacheConfig:
    enabled: bool = True
    directory: str = ""
    expiration_hours: float = 24.0

    @property
    def path(self) -> Path:
        return Path(self.directory).expanduser() if self.directory else default_cache_dir()

    @property
    def expiration(self) -> timedelta:
        return timedelta(hours=self.expiration_hours)


@dataclass
class Config:
    ai: AIConfig = field(default_factory=AIConfig)
    summary: SummaryConfig = field(default_factory=SummaryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    exclude: List[str] = field(default_factory=list)

    def save(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        config_dict = {
            "ai": {
                "provider": self.ai.provider,
                "model": self.ai.model,
                "api_key_env": self.ai.api_key_env,
                "api_key": self.ai.api_key,
                "temperature": self.ai.temperature,
                "max_tokens": self.ai.max_tokens,
            },
            "summary": {
                "batch_size": self.summary.batch_size,
                "max_concurrency": self.summary.max_concurrency,
                "request_interval": self.summary.request_interval,
                "timeout": self.summary.timeout,
            },
            "cache": {
                "enabled": self.cache.enabled,
                "directory": self.cache.directory,
                "expiration_hours": self.cache.expiration_hours,
            },
            "exclude": self.exclude,
        }

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigError(f"Could not write config file {path}: {e}") from e

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load configuration from a YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Could not read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config file {path}: expected a mapping")

        config = cls()
        try:
            if "ai" in data:
                config.ai = AIConfig(**data["ai"])
            if "summary" in data:
                config.summary = SummaryConfig(**data["summary"])
            if "cache" in data:
                config.cache = CacheConfig(**data["cache"])
            if "exclude" in data:
                if not isinstance(data["exclude"], (list, type(None))):
                    raise ConfigError(f"Invalid config file {path}: exclude must be a list")
                config.exclude = list(data["exclude"] or [])
        except TypeError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

        try:
            config.validate()
        except ConfigError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e
        return config

    def validate(self) -> None:
        """Check value types and ranges.

        Raises:
            ConfigError: naming the first offending setting.
        """
        _check_number("ai.temperature", self.ai.temperature, minimum=0.0)
        _check_int("ai.max_tokens", self.ai.max_tokens, minimum=1)
        _check_int("summary.batch_size", self.summary.batch_size, minimum=1)
        _check_int("summary.max_concurrency", self.summary.max_concurrency, minimum=1)
        _check_number("summary.request_interval", self.summary.request_interval, minimum=0.0)
        _check_number("summary.timeout", self.summary.timeout, minimum=0.0, exclusive=True)
        _check_number("cache.expiration_hours", self.cache.expiration_hours, minimum=0.0, exclusive=True)
        if not isinstance(self.cache.directory, str):
            raise ConfigError("cache.directory must be a string")
        if not all(isinstance(p, str) for p in self.exclude):
            raise ConfigError("exclude must be a list of strings")


def _check_int(name: str, value: object, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {value}")


def _check_number(name: str, value: object, minimum: float, exclusive: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if value < minimum or (exclusive and value == minimum):
        bound = "greater than" if exclusive else "at least"
        raise ConfigError(f"{name} must be {bound} {minimum}, got {value}")


def load_config(path: Optional[Path] = None) -> Config:
    """Load configuration from ``path`` or the default location.

    A missing file yields the default configuration.
    """
    path = path or default_config_path()
    if not path.exists():
        return Config()
    return Config.load(path)


def resolve_api_key(config: Config, environ: Optional[Mapping[str, str]] = None) -> str:
    """Return the API key from the environment, falling back to the config file."""
    environ = os.environ if environ is None else environ
    key = environ.get(config.ai.api_key_env, "").strip()
    if key:
        return key
    return (config.ai.api_key or "").strip()


def set_api_key(api_key: str, path: Optional[Path] = None) -> Path:
    """Persist the API key in the config file and return the file's path."""
    api_key = api_key.strip()
    if not api_key:
        raise ConfigError("API key must not be empty")

    path = path or default_config_path()
    config = load_config(path)
    config.ai.api_key = api_key
    config.save(path)
    return path


def mask_api_key(key: str) -> str:
    """Mask an API key for display."""
    if len(key) <= 8:
        return "****"
    return key[:4] + "..." + key[-4:]
