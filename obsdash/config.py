"""Dashboard configuration source.

Loads endpoints, refresh settings and resilience constants from YAML,
validated against a JSON schema. User settings changed from the dashboard
(theme, refresh interval) live in a separate small YAML file that is laid
over the main config on load.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from jsonschema import ValidationError, validate
from pydantic import SecretStr

from obsdash.engine.state import ConfigState, Theme
from obsdash.resilience import BackoffConfig, ResilienceConfig
from obsdash.secrets import read_auth_token

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "dashboard.yaml"
SETTINGS_PATH = Path(
    os.environ.get("OBSDASH_SETTINGS", Path.home() / ".config" / "obsdash" / "settings.yaml")
)

SOURCE_KEYS = ("metrics", "logs", "alerts")

_RESILIENCE_PROPERTIES = {
    "failure_threshold": {"type": "integer", "minimum": 1},
    "failure_window_seconds": {"type": "number", "exclusiveMinimum": 0},
    "max_attempts": {"type": "integer", "minimum": 1},
    "base_delay": {"type": "number", "minimum": 0},
    "factor": {"type": "number", "minimum": 1},
    "max_delay": {"type": "number", "minimum": 0},
}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "dashboard": {
            "type": "object",
            "properties": {
                "refresh_interval_ms": {"type": "integer", "minimum": 100},
                "stale_after_ms": {"type": "integer", "minimum": 0},
                "fetch_timeout_ms": {"type": "integer", "minimum": 1},
                "theme": {"enum": [t.value for t in Theme]},
            },
            "additionalProperties": False,
        },
        "endpoints": {
            "type": "object",
            "properties": {key: {"type": "string", "pattern": "^https?://"} for key in SOURCE_KEYS},
            "additionalProperties": False,
        },
        "resilience": {
            "type": "object",
            "properties": {
                **_RESILIENCE_PROPERTIES,
                "overrides": {
                    "type": "object",
                    "propertyNames": {"enum": list(SOURCE_KEYS)},
                    "additionalProperties": {
                        "type": "object",
                        "properties": _RESILIENCE_PROPERTIES,
                        "additionalProperties": False,
                    },
                },
            },
            "additionalProperties": False,
        },
    },
    "required": ["endpoints"],
    "additionalProperties": False,
}

SETTINGS_SCHEMA = {
    "type": "object",
    "properties": {
        "theme": {"enum": [t.value for t in Theme]},
        "refresh_interval_ms": {"type": "integer", "minimum": 100},
    },
    "additionalProperties": False,
}


class ConfigError(Exception):
    """Raised when a config file is missing or invalid."""


def _read_yaml(path: Path, schema: dict[str, Any]) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: invalid YAML: {exc}") from exc

    try:
        validate(instance=data, schema=schema)
    except ValidationError as exc:
        logger.error("%s failed schema validation: %s", path.name, exc.message)
        raise ConfigError(f"{path}: {exc.message}") from exc
    return data


def load_settings(path: Path = SETTINGS_PATH) -> dict[str, Any]:
    """User settings saved from the dashboard, or {} if none were saved yet."""
    if not path.exists():
        return {}
    return _read_yaml(path, SETTINGS_SCHEMA)


def save_settings(theme: Theme, refresh_interval_ms: int, path: Path = SETTINGS_PATH) -> None:
    """Persist user settings next to (not into) the main config."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {"theme": Theme(theme).value, "refresh_interval_ms": int(refresh_interval_ms)}
    path.write_text(yaml.safe_dump(data, sort_keys=True), encoding="utf-8")
    logger.info(f"Settings saved to {path}")


def load_config(
    config_path: Path = CONFIG_PATH,
    settings_path: Optional[Path] = SETTINGS_PATH,
    token: Optional[str] = None,
) -> ConfigState:
    """
    Build the startup ConfigState.

    Args:
        config_path: Main YAML config
        settings_path: Saved user settings laid over the config (None to skip)
        token: Auth token; read from env/Keychain when None

    Raises:
        ConfigError: Config file missing or invalid
    """
    if not config_path.exists():
        raise ConfigError(f"config file not found: {config_path}")

    data = _read_yaml(config_path, CONFIG_SCHEMA)
    dashboard = dict(data.get("dashboard", {}))
    if settings_path is not None:
        dashboard.update(load_settings(settings_path))

    if token is None:
        token = read_auth_token()

    defaults = ConfigState()
    config = ConfigState(
        endpoints=data["endpoints"],
        auth_token=SecretStr(token),
        refresh_interval_ms=dashboard.get("refresh_interval_ms", defaults.refresh_interval_ms),
        stale_after_ms=dashboard.get("stale_after_ms", defaults.stale_after_ms),
        fetch_timeout_ms=dashboard.get("fetch_timeout_ms", defaults.fetch_timeout_ms),
        theme=Theme(dashboard.get("theme", defaults.theme.value)),
    )
    logger.info(
        f"Loaded config from {config_path}: endpoints={sorted(config.endpoints)}, "
        f"refresh={config.refresh_interval_ms}ms"
    )
    return config


def load_resilience_config(config_path: Path = CONFIG_PATH) -> ResilienceConfig:
    """Resilience constants from the `resilience` section (defaults if absent)."""
    if not config_path.exists():
        return ResilienceConfig()
    section = dict(_read_yaml(config_path, CONFIG_SCHEMA).get("resilience", {}))

    overrides = section.pop("overrides", {})
    backoff_fields = {
        name: float(section.pop(name))
        for name in ("base_delay", "factor", "max_delay")
        if name in section
    }
    return ResilienceConfig(
        backoff=BackoffConfig(**backoff_fields),
        overrides=overrides,
        **section,
    )
