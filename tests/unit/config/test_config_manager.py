from __future__ import annotations

from pathlib import Path

import pytest

from runwatch.config import ConfigLoadError, ConfigManager, YAMLConfigLoader
from runwatch.config.manager import _coerce_env_value, _collect_env_overrides, _deep_merge
from runwatch.errors import ConfigurationError


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    config = ConfigManager.load(str(tmp_path / "absent.yaml")).get()
    assert config.database.url == ""
    assert config.uploads.max_attempts == 5
    assert config.storage.backend == "local"
    assert config.taxonomy.layer == ["UI", "API"]


def test_yaml_values_are_loaded(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "runwatch.yaml",
        """
uploads:
  workers: 2
  queue_capacity: 7
taxonomy:
  feature: [auth]
catalog:
  - id: auth.LoginTest
    tags: [UI, P0, auth]
suites:
  " smoke ": ["tags:P0", ""]
""",
    )
    manager = ConfigManager.load(str(path))
    config = manager.get()
    assert manager.config_path == str(path)
    assert config.uploads.workers == 2
    assert config.uploads.queue_capacity == 7
    assert config.catalog[0].id == "auth.LoginTest"
    assert config.suites == {"smoke": ["tags:P0"]}


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path / "runwatch.yaml", "uploads:\n  workers: 2\n")
    monkeypatch.setenv("RUNWATCH_UPLOADS__WORKERS", "8")
    monkeypatch.setenv("RUNWATCH_STORAGE__ROOT", "/var/lib/runwatch")
    monkeypatch.setenv("RUNWATCH_DATABASE_URL", "sqlite+aiosqlite:///runwatch.db")
    monkeypatch.setenv("RUNWATCH_LOG_LEVEL", "debug")
    config = ConfigManager.load(str(path)).get()
    assert config.uploads.workers == 8
    assert config.storage.root == "/var/lib/runwatch"
    assert config.database.url == "sqlite+aiosqlite:///runwatch.db"


def test_runtime_overrides_win(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RUNWATCH_UPLOADS__MAX_ATTEMPTS", "9")
    config = ConfigManager.load(str(tmp_path / "x.yaml"), overrides={"uploads": {"max_attempts": 2}}).get()
    assert config.uploads.max_attempts == 2


def test_config_env_variable_selects_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path / "custom.yaml", "api:\n  port: 9100\n")
    monkeypatch.setenv("RUNWATCH_CONFIG", str(path))
    assert YAMLConfigLoader.resolve_path("ignored.yaml") == path
    assert ConfigManager.load().get().api.port == 9100


def test_invalid_yaml_reports_position(tmp_path: Path) -> None:
    path = _write(tmp_path / "bad.yaml", "uploads:\n  workers: [1\n")
    with pytest.raises(ConfigLoadError, match="Invalid YAML"):
        YAMLConfigLoader.load_dict(path)


def test_non_mapping_root_is_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path / "list.yaml", "- a\n- b\n")
    with pytest.raises(ConfigLoadError, match="mapping"):
        YAMLConfigLoader.load_dict(path)


def test_invalid_values_raise_configuration_error(tmp_path: Path) -> None:
    path = _write(tmp_path / "runwatch.yaml", "uploads:\n  workers: 0\n")
    with pytest.raises(ConfigurationError):
        ConfigManager.load(str(path))
    s3 = _write(tmp_path / "s3.yaml", "storage:\n  backend: s3\n")
    with pytest.raises(ConfigurationError, match="bucket"):
        ConfigManager.load(str(s3))


def test_dump_roundtrip(tmp_path: Path) -> None:
    target = YAMLConfigLoader.dump({"uploads": {"workers": 3}}, tmp_path / "nested" / "runwatch.yaml")
    assert YAMLConfigLoader.load_dict(target) == {"uploads": {"workers": 3}}


def test_singleton_is_shared() -> None:
    assert ConfigManager.instance() is ConfigManager.instance()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("true", True),
        ("False", False),
        ("null", None),
        ("42", 42),
        ("0.5", 0.5),
        ('["UI", "API"]', ["UI", "API"]),
        ("[broken", "[broken"),
        ("sqlite:///x.db", "sqlite:///x.db"),
    ],
)
def test_coerce_env_value(raw: str, expected: object) -> None:
    assert _coerce_env_value(raw) == expected


def test_collect_env_overrides_skips_reserved_names() -> None:
    overrides = _collect_env_overrides(
        {
            "RUNWATCH_UPLOADS__WORKERS": "3",
            "RUNWATCH_TAXONOMY__FEATURE": '["auth"]',
            "RUNWATCH_CONFIG": "/etc/runwatch.yaml",
            "RUNWATCH_LOG_LEVEL": "debug",
            "OTHER": "x",
        }
    )
    assert overrides == {"uploads": {"workers": 3}, "taxonomy": {"feature": ["auth"]}}


def test_numeric_looking_env_values_stay_text_for_string_fields(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("RUNWATCH_STORAGE__BUCKET", "2024")
    monkeypatch.setenv("RUNWATCH_STORAGE__PREFIX", "123")
    monkeypatch.setenv("RUNWATCH_STORAGE__REGION", "null")
    monkeypatch.setenv("RUNWATCH_UPLOADS__SHUTDOWN_GRACE_SECONDS", "2.5")
    config = ConfigManager.load(str(tmp_path / "missing.yaml")).get()
    assert config.storage.bucket == "2024"
    assert config.storage.prefix == "123"
    assert config.storage.region is None
    assert config.uploads.shutdown_grace_seconds == 2.5


def test_deep_merge_keeps_siblings() -> None:
    assert _deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}}) == {"a": {"b": 1, "c": 3}}
