"""Settings resolution for bamboohr-shim.

Builds a :class:`~bamboohr_shim.models.ClientSettings` from, in order of
precedence (high to low):

1. Explicit arguments to :func:`resolve_settings` (CLI flags).
2. Environment variables (``BAMBOOHR_API_KEY``, ``BAMBOOHR_COMPANY_DOMAIN``,
   ``BAMBOOHR_BASE_URL``, ``BAMBOOHR_TIMEOUT``, ``BAMBOOHR_MAX_RETRIES``,
   ``BAMBOOHR_CACHE_TTL``).
3. A project JSON file: ``$BAMBOOHR_CONFIG`` if set, else ``./bamboohr.json``.
4. Model defaults.

The project file mirrors the :class:`ClientSettings` shape, with the
credentials flattened for convenience::

    {
      "subdomain": "acme",
      "request": {"timeout": 10, "max_retries": 5},
      "cache": {"ttl_seconds": 60}
    }

Keeping the API key in the file is supported but discouraged; prefer the
environment.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from bamboohr_shim.exceptions import ConfigError
from bamboohr_shim.models import ClientSettings

_PROJECT_CONFIG_FILENAME = "bamboohr.json"

ENV_API_KEY = "BAMBOOHR_API_KEY"
ENV_SUBDOMAIN = "BAMBOOHR_COMPANY_DOMAIN"
ENV_BASE_URL = "BAMBOOHR_BASE_URL"
ENV_TIMEOUT = "BAMBOOHR_TIMEOUT"
ENV_MAX_RETRIES = "BAMBOOHR_MAX_RETRIES"
ENV_CACHE_TTL = "BAMBOOHR_CACHE_TTL"
ENV_CONFIG = "BAMBOOHR_CONFIG"


def project_config_path() -> Path:
    """Return the project config path (``$BAMBOOHR_CONFIG`` or ``./bamboohr.json``)."""
    override = os.environ.get(ENV_CONFIG)
    if override:
        return Path(override).expanduser()
    return Path.cwd() / _PROJECT_CONFIG_FILENAME


def load_project_config(path: Optional[Path] = None) -> Optional[dict[str, Any]]:
    """Load the project JSON config.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a valid JSON object.
    """
    path = path or project_config_path()
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


def _env_overrides() -> dict[str, Any]:
    """Collect settings from environment variables into the file layout."""
    overrides: dict[str, Any] = {}
    if os.environ.get(ENV_API_KEY):
        overrides["api_key"] = os.environ[ENV_API_KEY]
    if os.environ.get(ENV_SUBDOMAIN):
        overrides["subdomain"] = os.environ[ENV_SUBDOMAIN]
    if os.environ.get(ENV_BASE_URL):
        overrides["base_url"] = os.environ[ENV_BASE_URL]

    request: dict[str, Any] = {}
    if os.environ.get(ENV_TIMEOUT):
        request["timeout"] = os.environ[ENV_TIMEOUT]
    if os.environ.get(ENV_MAX_RETRIES):
        request["max_retries"] = os.environ[ENV_MAX_RETRIES]
    if request:
        overrides["request"] = request
    if os.environ.get(ENV_CACHE_TTL):
        overrides["cache"] = {"ttl_seconds": os.environ[ENV_CACHE_TTL]}
    return overrides


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge *override* into *base* one level deep (nested dicts are merged)."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def resolve_settings(
    api_key: Optional[str] = None,
    subdomain: Optional[str] = None,
    base_url: Optional[str] = None,
    config_path: Optional[Path] = None,
) -> ClientSettings:
    """Resolve client settings with full precedence chain.

    Args:
        api_key: Explicit API key (highest precedence).
        subdomain: Explicit company subdomain.
        base_url: Explicit base URL override.
        config_path: Project config file to read instead of the default.

    Returns:
        Validated :class:`~bamboohr_shim.models.ClientSettings`.

    Raises:
        ConfigError: If the API key or subdomain is missing, or any value
            fails validation.
    """
    raw: dict[str, Any] = load_project_config(config_path) or {}
    raw = _merge(raw, _env_overrides())

    explicit = {
        "api_key": api_key,
        "subdomain": subdomain,
        "base_url": base_url,
    }
    raw = _merge(raw, {k: v for k, v in explicit.items() if v is not None})

    missing = [
        env
        for field, env in (("api_key", ENV_API_KEY), ("subdomain", ENV_SUBDOMAIN))
        if not raw.get(field)
    ]
    if missing:
        raise ConfigError(
            "Required settings not set: "
            + ", ".join(missing)
            + ". Set the environment variables or add them to "
            + _PROJECT_CONFIG_FILENAME
        )

    credentials = {"api_key": raw.pop("api_key"), "subdomain": raw.pop("subdomain")}
    try:
        return ClientSettings.model_validate({**raw, "credentials": credentials})
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc
