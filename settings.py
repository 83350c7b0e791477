# settings.py
import logging
import os
from functools import lru_cache
from typing import Dict, List, Literal, Mapping, Optional, Union

from dotenv.parser import parse_stream
from pydantic import BaseModel, ConfigDict, Field, SecretStr

logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "gemini-2.0-flash-lite"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

TRUE_STRINGS = {"true", "1", "yes", "on"}
FALSE_STRINGS = {"false", "0", "no", "off"}


class ConfigError(Exception):
    """Raised when a required configuration variable is absent."""

    def __init__(self, missing_vars: List[str]):
        self.missing_vars = list(missing_vars)
        super().__init__(
            "Missing required environment variables: " + ", ".join(self.missing_vars)
        )


def coerce_bool(value: Optional[str], default: Optional[bool] = None) -> Union[bool, str, None]:
    """Map boolean-like strings to bools; empty or absent gives ``default``.

    Unrecognized strings are returned unchanged.
    """
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered in TRUE_STRINGS:
        return True
    if lowered in FALSE_STRINGS:
        return False
    return value


def read_env_file(path: str) -> Dict[str, str]:
    # First occurrence of a key wins, unlike dotenv_values which keeps the last.
    values: Dict[str, str] = {}
    if not path or not os.path.isfile(path):
        return values
    with open(path, encoding="utf-8") as stream:
        for binding in parse_stream(stream):
            if binding.error:
                logger.debug("Skipping unparsable line in %s: %r", path, binding.original.string)
                continue
            if binding.key is None or binding.value is None:
                continue
            values.setdefault(binding.key, binding.value)
    return values


class EnvSource:
    """Runtime environment layered over an optional key=value file."""

    def __init__(self, environ: Mapping[str, str], file_values: Optional[Mapping[str, str]] = None):
        merged = dict(file_values or {})
        merged.update(environ)
        self._values = merged

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._values.get(key)
        if value is None or value == "":
            return default
        return value

    def get_bool(self, key: str, default: Optional[bool] = None) -> Union[bool, str, None]:
        return coerce_bool(self._values.get(key), default)

    def first(self, *keys: str, default: Optional[str] = None) -> Optional[str]:
        for key in keys:
            value = self.get(key)
            if value is not None:
                return value
        return default


def load_source(environ: Optional[Mapping[str, str]] = None, env_file: str = ".env") -> EnvSource:
    if environ is None:
        environ = os.environ
    return EnvSource(environ, read_env_file(env_file))


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    api_key: SecretStr = Field(..., description="Upstream provider key, never logged or returned")
    model_name: str = DEFAULT_MODEL_NAME
    mode: Literal["production", "development"] = "production"
    base_url: str = DEFAULT_BASE_URL

    @property
    def verify_tls(self) -> bool:
        return self.mode == "production"

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.model_name}:generateContent"


def resolve_mode(source: EnvSource) -> str:
    # Anything but an explicit "development" keeps TLS verification on.
    raw = (source.get("APP_ENV", "production") or "").strip().lower()
    return "development" if raw == "development" else "production"


def resolve_log_level(source: EnvSource) -> str:
    default = "DEBUG" if resolve_mode(source) == "development" else "INFO"
    return source.get("LOG_LEVEL", default).upper()


def diagnostics_enabled(source: EnvSource) -> bool:
    return source.get_bool("ENABLE_DIAGNOSTICS", resolve_mode(source) == "development") is True


def resolve(source: EnvSource) -> Settings:
    api_key = source.first("PROVIDER_API_KEY", "GEMINI_API_KEY")
    if not api_key:
        raise ConfigError(["PROVIDER_API_KEY"])

    mode = resolve_mode(source)
    return Settings(
        api_key=api_key,
        model_name=source.first("MODEL_NAME", "GEMINI_MODEL_NAME", default=DEFAULT_MODEL_NAME),
        mode=mode,
        base_url=source.get("PROVIDER_BASE_URL", DEFAULT_BASE_URL),
    )


@lru_cache(maxsize=1)
def get_env_source() -> EnvSource:
    return load_source()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return resolve(get_env_source())
