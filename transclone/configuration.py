"""Layered configuration loader for Transclone."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping, Sequence

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import TranslationProviderConfigurationError

APP_NAME = "transclone"
CONFIG_FILENAME = "config.yaml"


class TranscloneConfig(BaseModel):
    """Schema describing all supported configuration options."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    LLM_PROVIDER: Literal["azure_openai", "openai"] = Field(
        default="openai",
        description="Large language model provider selection.",
    )
    AZURE_OPENAI_API_KEY: str | None = Field(default=None, repr=False)
    AZURE_OPENAI_ENDPOINT: str | None = None
    AZURE_OPENAI_API_VERSION: str | None = None
    AZURE_OPENAI_DEPLOYMENT_NAME: str | None = None
    OPENAI_API_KEY: str | None = Field(default=None, repr=False)
    TRANSCLONE_MODEL: str | None = None
    TRANSCLONE_PROVIDER_DEBUG: bool = False

    FRAGMENT_MODE: Literal["blocks", "joined"] = "blocks"
    BATCH_BUDGET: int = Field(default=4000, ge=1)

    WORDPRESS_URL: str | None = None
    WORDPRESS_USERNAME: str | None = None
    WORDPRESS_APPLICATION_PASSWORD: str | None = Field(default=None, repr=False)
    WOOCOMMERCE_CONSUMER_KEY: str | None = Field(default=None, repr=False)
    WOOCOMMERCE_CONSUMER_SECRET: str | None = Field(default=None, repr=False)
    REQUEST_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _normalise_provider(cls, data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("LLM_PROVIDER")
            if isinstance(raw_value, str):
                normalized = raw_value.strip().lower().replace("-", "_")
                synonyms = {
                    "azure_open_ai": "azure_openai",
                    "azureopenai": "azure_openai",
                }
                normalized = synonyms.get(normalized, normalized)
                if normalized not in {"openai", "azure_openai"}:
                    normalized = "openai"
                data["LLM_PROVIDER"] = normalized
            raw_mode = data.get("FRAGMENT_MODE")
            if isinstance(raw_mode, str):
                data["FRAGMENT_MODE"] = raw_mode.strip().lower()
        return data


def load_config(
    app_dir: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    home_dir: Path | None = None,
) -> TranscloneConfig:
    """Merge YAML files, ``.env`` and the environment into a validated config."""

    base_dir = app_dir or Path.cwd()
    combined = _load_discovered_yaml(app_dir=base_dir, home_dir=home_dir)
    _merge_env_sources(
        combined,
        app_dir=base_dir,
        environ=os.environ if environ is None else environ,
    )

    try:
        return TranscloneConfig.model_validate(combined)
    except ValidationError as exc:
        raise TranslationProviderConfigurationError(
            _format_validation_errors(exc.errors())
        ) from exc


def _load_discovered_yaml(*, app_dir: Path, home_dir: Path | None) -> dict[str, Any]:
    """Load the user-level then the local YAML file; later files win."""

    result: dict[str, Any] = {}
    for path in _discover_yaml_paths(app_dir, home_dir=home_dir):
        result.update(_load_yaml(path))
    return result


def _merge_env_sources(
    target: dict[str, Any],
    *,
    app_dir: Path,
    environ: Mapping[str, str],
) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(TranscloneConfig.model_fields)

    def merge_values(values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            if key in allowed and isinstance(value, str):
                target[key] = value

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        merge_values(dotenv_values(dotenv_path))

    merge_values(environ)


def _discover_yaml_paths(base_dir: Path, *, home_dir: Path | None) -> list[Path]:
    home = home_dir or Path.home()
    candidates = [
        home / ".config" / APP_NAME / CONFIG_FILENAME,
        base_dir / CONFIG_FILENAME,
    ]
    return [path for path in candidates if path.is_file()]


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            parsed = yaml.safe_load(handle)
    except OSError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except yaml.YAMLError as exc:
        raise TranslationProviderConfigurationError(
            f"Invalid configuration file {path}: {exc}"
        ) from exc
    if parsed is None:
        return {}
    if not isinstance(parsed, Mapping):
        raise TranslationProviderConfigurationError(
            f"Invalid configuration file {path}: expected a mapping at the root."
        )
    return dict(parsed)


def validate_provider_settings(settings: TranscloneConfig) -> None:
    """Check that the selected LLM provider has its credentials."""

    provider = settings.LLM_PROVIDER
    errors: list[str] = []

    if provider == "openai":
        if not settings.OPENAI_API_KEY:
            errors.append(
                "OPENAI_API_KEY is required when LLM_PROVIDER is 'openai'."
            )
    elif provider == "azure_openai":
        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": settings.AZURE_OPENAI_API_KEY,
                "AZURE_OPENAI_ENDPOINT": settings.AZURE_OPENAI_ENDPOINT,
                "AZURE_OPENAI_API_VERSION": settings.AZURE_OPENAI_API_VERSION,
                "AZURE_OPENAI_DEPLOYMENT_NAME": settings.AZURE_OPENAI_DEPLOYMENT_NAME,
            }.items()
            if not value
        ]
        if missing:
            errors.append(
                "The following Azure OpenAI settings must be provided when "
                f"LLM_PROVIDER is 'azure_openai': {', '.join(missing)}."
            )

    _raise_if_errors(errors)


def validate_store_settings(settings: TranscloneConfig) -> None:
    """Check that the WordPress connection is configured."""

    missing = [
        name
        for name, value in {
            "WORDPRESS_URL": settings.WORDPRESS_URL,
            "WORDPRESS_USERNAME": settings.WORDPRESS_USERNAME,
            "WORDPRESS_APPLICATION_PASSWORD": settings.WORDPRESS_APPLICATION_PASSWORD,
        }.items()
        if not value
    ]
    errors: list[str] = []
    if missing:
        errors.append(
            "The WordPress connection is incomplete. Please set: "
            + ", ".join(missing)
            + "."
        )
    _raise_if_errors(errors)


def _raise_if_errors(errors: list[str]) -> None:
    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise TranslationProviderConfigurationError(
            "Configuration validation errors detected:\n" + bullet_list
        )


def _format_validation_errors(entries: Sequence[Mapping[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("loc") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("msg") or "Invalid value")
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


@lru_cache(maxsize=1)
def _cached_settings(app_dir: Path | None) -> TranscloneConfig:
    return load_config(app_dir)


def get_settings(app_dir: Path | None = None) -> TranscloneConfig:
    """Return the validated configuration, loaded once per process."""

    return _cached_settings(app_dir)
