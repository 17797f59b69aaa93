"""Configuration manager for runwatch."""

from __future__ import annotations

import json
import os
import types
from threading import Lock
from typing import Any, ClassVar, Union, get_args, get_origin

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from runwatch.config.loader import YAMLConfigLoader
from runwatch.config.models import RunwatchConfig
from runwatch.errors import ConfigurationError

ENV_PREFIX = "RUNWATCH_"

# Process-level variables that share the prefix but are not config paths.
_RESERVED_ENV = frozenset({"RUNWATCH_CONFIG", "RUNWATCH_LOG_LEVEL", "RUNWATCH_DATABASE_URL"})


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, value in updates.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _coerce_env_value(raw: str) -> Any:
    value = raw.strip()
    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        pass
    if value.startswith("[") or value.startswith("{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def _text_field(path: list[str]) -> tuple[bool, bool]:
    """Return ``(is_text, allows_none)`` for the config field at ``path``."""
    model: type[BaseModel] = RunwatchConfig
    annotation: Any = None
    for index, part in enumerate(path):
        field = model.model_fields.get(part)
        if field is None:
            return False, False
        annotation = field.annotation
        if index < len(path) - 1:
            if not (isinstance(annotation, type) and issubclass(annotation, BaseModel)):
                return False, False
            model = annotation
    if annotation is str:
        return True, False
    if get_origin(annotation) in (Union, types.UnionType):
        args = set(get_args(annotation))
        if args == {str, type(None)}:
            return True, True
    return False, False


def _env_value_for(path: list[str], raw: str) -> Any:
    is_text, allows_none = _text_field(path)
    if not is_text:
        return _coerce_env_value(raw)
    value = raw.strip()
    if allows_none and value.lower() in {"null", "none"}:
        return None
    return value


def _collect_env_overrides(
    environ: dict[str, str] | None = None,
    prefix: str = ENV_PREFIX,
) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    source = os.environ if environ is None else environ
    for key, raw_value in source.items():
        if not key.startswith(prefix) or key in _RESERVED_ENV:
            continue
        suffix = key[len(prefix) :]
        path = [p.strip().lower() for p in suffix.split("__") if p.strip()]
        if not path:
            continue
        cursor = overrides
        for part in path[:-1]:
            existing = cursor.get(part)
            if not isinstance(existing, dict):
                existing = {}
                cursor[part] = existing
            cursor = existing
        cursor[path[-1]] = _env_value_for(path, raw_value)
    return overrides


class ConfigManager:
    """Thread-safe singleton holding the configuration fixed at startup."""

    _instance: ClassVar[ConfigManager | None] = None
    _class_lock: ClassVar[Lock] = Lock()

    def __init__(self) -> None:
        self._lock = Lock()
        self._config = RunwatchConfig()
        self._config_path: str | None = None

    @classmethod
    def instance(cls) -> ConfigManager:
        """Get singleton instance."""
        if cls._instance is not None:
            return cls._instance
        with cls._class_lock:
            if cls._instance is None:
                cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset_for_tests(cls) -> None:
        """Reset singleton state for isolated unit tests."""
        with cls._class_lock:
            cls._instance = None

    @classmethod
    def load(
        cls,
        config_path: str | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> ConfigManager:
        """Load configuration from defaults + YAML + env + runtime overrides.

        Raises:
            ConfigurationError: the merged configuration does not validate.
        """
        manager = cls.instance()
        resolved = YAMLConfigLoader.resolve_path(config_path)
        yaml_data = YAMLConfigLoader.load_dict(resolved)
        merged = _deep_merge(yaml_data, _collect_env_overrides())
        database_url = os.environ.get("RUNWATCH_DATABASE_URL", "").strip()
        if database_url:
            merged = _deep_merge(merged, {"database": {"url": database_url}})
        merged = _deep_merge(merged, overrides or {})
        try:
            new_config = RunwatchConfig.model_validate(merged)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid configuration ({resolved}): {exc}") from exc
        with manager._lock:
            manager._config = new_config
            manager._config_path = str(resolved)
        return manager

    def get(self) -> RunwatchConfig:
        """Return current config snapshot."""
        with self._lock:
            return self._config

    @property
    def config_path(self) -> str | None:
        with self._lock:
            return self._config_path
