"""pydantic-settings backed configuration loader for Lipyantar."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping, Sequence

from dotenv import dotenv_values
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .cache import DEFAULT_CACHE_KEY, CacheWritePolicy
from .errors import ConfigurationError
from .providers import DEFAULT_API_BASE_URL, DEFAULT_TIMEOUT_SECONDS
from .storage import DEFAULT_QUOTA_BYTES

ENV_PREFIX = "LIPYANTAR_"


class LipyantarConfig(BaseSettings):
    """Schema describing all supported configuration options."""

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    api_base_url: str = Field(
        default=DEFAULT_API_BASE_URL,
        description="Remote script conversion endpoint.",
    )
    request_timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    batch_size: int = Field(default=10, ge=1)

    cache_key: str = DEFAULT_CACHE_KEY
    cache_max_entries: int = Field(default=1000, ge=1)
    cache_write_policy: CacheWritePolicy = CacheWritePolicy.SAMPLED
    cache_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)

    storage_dir: Path = Field(default_factory=lambda: Path.home() / ".lipyantar")
    storage_quota_bytes: int = Field(default=DEFAULT_QUOTA_BYTES, gt=0)

    container_selector: str = "div.reader-container"
    paragraph_tag: str = "p"
    leaf_tag: str = "span"
    debounce_seconds: float = Field(default=0.1, ge=0.0)
    observer_retry_seconds: float = Field(default=1.0, gt=0.0)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_json: bool = False
    provider_debug: bool = False

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("cache_write_policy", mode="before")
    @classmethod
    def _normalise_write_policy(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            synonyms = {
                "always": "every-write",
                "flush-only": "explicit-flush-only",
                "manual": "explicit-flush-only",
            }
            return synonyms.get(normalized, normalized)
        return value


@lru_cache(maxsize=4)
def _load_config_instance(app_dir: Path | None = None) -> LipyantarConfig:
    """Load configuration layers once and cache the immutable instance."""

    base_dir = app_dir or Path.cwd()
    combined: dict[str, Any] = {}
    _merge_env_sources(combined, app_dir=base_dir)
    try:
        return LipyantarConfig(**combined)
    except ValidationError as exc:
        raise ConfigurationError(_format_validation_errors(exc.errors())) from exc


def _merge_env_sources(target: dict[str, Any], *, app_dir: Path) -> None:
    """Merge .env and process environment variables into the target mapping.

    Later layers win: values from ``.env`` are overridden by the process
    environment.
    """

    allowed = set(LipyantarConfig.model_fields.keys())

    def merge_values(values: Mapping[str, str | None]) -> None:
        for key, value in sorted(values.items()):
            if value is None or not key.startswith(ENV_PREFIX):
                continue
            field_name = key[len(ENV_PREFIX):].lower()
            if field_name not in allowed:
                continue
            target[field_name] = value

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        merge_values(dotenv_values(dotenv_path))

    merge_values({k: v for k, v in os.environ.items() if isinstance(v, str)})


def _format_validation_errors(entries: Sequence[Mapping[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("loc") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("msg") or "Invalid value")
        prefix = f"{ENV_PREFIX}{location.upper()}: " if location else ""
        details.append(f"- {prefix}{message}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def get_config(app_dir: Path | None = None) -> LipyantarConfig:
    """Return the validated configuration."""

    return _load_config_instance(app_dir=app_dir)


def reset_config_cache() -> None:
    _load_config_instance.cache_clear()
