"""Tests for konfigurator.config -- XDG paths, atomic writes, precedence."""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from konfigurator.config import (
    atomic_write,
    get_config_dir,
    get_data_dir,
    load_env_config,
    load_project_config,
    load_user_config,
    resolve_settings,
    save_user_config,
    set_setting,
    unset_setting,
    user_config_path,
)
from konfigurator.exceptions import ConfigError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: Any) -> None:
    """Write a dict as JSON to *path*, creating parent dirs."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPaths:
    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("konfigurator.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_config_dir()
        assert result == tmp_path / ".config" / "konfigurator"
        assert result.is_dir()

    def test_config_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom = tmp_path / "custom_config"
        monkeypatch.setattr("konfigurator.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(custom))

        assert get_config_dir() == custom / "konfigurator"

    def test_data_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("konfigurator.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_data_dir() == tmp_path / ".local" / "share" / "konfigurator"

    def test_fallback_dirs(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("konfigurator.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_config_dir() == tmp_path / ".konfigurator"
        assert get_data_dir() == tmp_path / ".konfigurator" / "logs"

    def test_user_config_path(self, isolated_config: Path) -> None:
        assert user_config_path() == isolated_config / "config" / "konfigurator" / "config.json"


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_writes_content_and_creates_parents(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "dir" / "file.txt"
        atomic_write(target, "hello")
        assert target.read_text() == "hello"

    def test_replaces_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "file.txt"
        target.write_text("old")
        atomic_write(target, "new")
        assert target.read_text() == "new"

    def test_applies_mode(self, tmp_path: Path) -> None:
        target = tmp_path / "kubeconfig"
        atomic_write(target, "secret", mode=0o600)
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o600

    def test_no_temp_file_left_on_failure(self, tmp_path: Path) -> None:
        target = tmp_path / "file.txt"
        with patch("konfigurator.config.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError, match="disk full"):
                atomic_write(target, "data")
        assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# Config layers
# ---------------------------------------------------------------------------


class TestConfigFiles:
    def test_missing_user_config_is_empty(self, isolated_config: Path) -> None:
        assert load_user_config() == {}

    def test_save_and_load_user_config(self, isolated_config: Path) -> None:
        save_user_config({"issuer": "https://dex.example.com", "port": 18000})
        assert load_user_config() == {"issuer": "https://dex.example.com", "port": 18000}

    def test_save_rejects_invalid(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid settings"):
            save_user_config({"port": "not-a-port"})
        assert not user_config_path().exists()

    def test_corrupt_user_config(self, isolated_config: Path) -> None:
        user_config_path().write_text("{not json")
        with pytest.raises(ConfigError, match="Invalid user config"):
            load_user_config()

    def test_user_config_must_be_object(self, isolated_config: Path) -> None:
        _write_json(user_config_path(), ["issuer"])
        with pytest.raises(ConfigError, match="expected a JSON object"):
            load_user_config()

    def test_project_config(self, isolated_config: Path) -> None:
        assert load_project_config() is None
        _write_json(isolated_config / "konfigurator.json", {"client_id": "team"})
        assert load_project_config() == {"client_id": "team"}

    def test_env_config(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KONFIGURATOR_ISSUER", "https://env.example.com")
        monkeypatch.setenv("KONFIGURATOR_PORT", "9000")
        monkeypatch.setenv("KONFIGURATOR_KUBE_NAMESPACE", "")
        assert load_env_config() == {"issuer": "https://env.example.com", "port": "9000"}


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------


class TestResolveSettings:
    def test_defaults_only(self, isolated_config: Path) -> None:
        settings = resolve_settings()
        assert settings.port == 8000
        assert settings.issuer is None

    def test_full_precedence_chain(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        save_user_config(
            {
                "issuer": "https://user.example.com",
                "client_id": "user-client",
                "kube_namespace": "user-ns",
                "port": 1111,
            }
        )
        _write_json(
            isolated_config / "konfigurator.json",
            {"client_id": "project-client", "kube_namespace": "project-ns", "port": 2222},
        )
        monkeypatch.setenv("KONFIGURATOR_KUBE_NAMESPACE", "env-ns")
        monkeypatch.setenv("KONFIGURATOR_PORT", "3333")

        settings = resolve_settings({"port": 4444, "issuer": None})

        assert settings.issuer == "https://user.example.com"
        assert settings.client_id == "project-client"
        assert settings.kube_namespace == "env-ns"
        assert settings.port == 4444

    def test_invalid_merged_value(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("KONFIGURATOR_PORT", "99999")
        with pytest.raises(ConfigError, match="merged configuration"):
            resolve_settings()

    def test_unknown_key_in_project_config(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "konfigurator.json", {"colour": "red"})
        with pytest.raises(ConfigError):
            resolve_settings()


class TestSetUnset:
    def test_set_coerces_and_persists(self, isolated_config: Path) -> None:
        settings = set_setting("port", "18000")
        assert settings.port == 18000
        assert json.loads(user_config_path().read_text()) == {"port": 18000}

    def test_set_unknown_key(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigError, match="Unknown setting 'colour'"):
            set_setting("colour", "red")

    def test_set_invalid_value(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigError):
            set_setting("callback_path", "/")
        assert load_user_config() == {}

    def test_unset(self, isolated_config: Path) -> None:
        set_setting("issuer", "https://dex.example.com")
        set_setting("port", "9000")
        unset_setting("port")
        assert load_user_config() == {"issuer": "https://dex.example.com"}

    def test_unset_absent_key_is_noop(self, isolated_config: Path) -> None:
        unset_setting("port")
        assert not user_config_path().exists()

    def test_unset_unknown_key(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigError):
            unset_setting("colour")
