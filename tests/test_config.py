"""
Tests for app.config - Configuration loading functionality
Tests config loading from JSON and environment variables.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from agent.reference_fetcher import CHAT_URL
from app.config import Config, _get, _resolve_base_dir, find_steam_dir, load_config


class TestResolveBaseDir:
    """Tests for _resolve_base_dir function"""

    def test_resolve_base_dir_normal(self):
        with patch("sys.frozen", False, create=True):
            result = _resolve_base_dir()
            assert isinstance(result, Path)
            assert (result / "app" / "config.py").exists()

    def test_resolve_base_dir_frozen(self, tmp_path):
        exe = tmp_path / "ChatSkin" / "ChatSkin.exe"
        with patch("sys.frozen", True, create=True):
            with patch("sys.executable", str(exe)):
                assert _resolve_base_dir() == tmp_path / "ChatSkin"


class TestGet:
    """Tests for _get helper function"""

    def test_get_from_env_int(self):
        with patch.dict(os.environ, {"CHATSKIN_KEY": "200"}):
            assert _get({"key": 100}, "key", 50) == 200

    def test_get_from_env_float(self):
        with patch.dict(os.environ, {"CHATSKIN_KEY": "2.5"}):
            assert _get({"key": 1.5}, "key", 1.0) == 2.5

    def test_get_from_env_string(self):
        with patch.dict(os.environ, {"CHATSKIN_KEY": "override"}):
            assert _get({"key": "default"}, "key", "fallback") == "override"

    @pytest.mark.parametrize("raw,expected", [("1", True), ("true", True), ("Yes", True), ("0", False), ("off", False)])
    def test_get_from_env_bool(self, raw, expected):
        with patch.dict(os.environ, {"CHATSKIN_KEY": raw}):
            assert _get({}, "key", not expected) is expected

    def test_get_from_json_when_env_missing(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _get({"key": "json_value"}, "key", "default") == "json_value"

    def test_get_from_default_when_both_missing(self):
        with patch.dict(os.environ, {}, clear=True):
            assert _get({}, "key", "default") == "default"

    def test_get_invalid_env_int(self):
        with patch.dict(os.environ, {"CHATSKIN_KEY": "not_a_number"}):
            assert _get({"key": 100}, "key", 50) == 50  # falls back to default

    def test_get_invalid_env_float(self):
        with patch.dict(os.environ, {"CHATSKIN_KEY": "not_a_float"}):
            assert _get({"key": 1.5}, "key", 1.0) == 1.0


class TestFindSteamDir:
    def test_off_windows_is_empty(self):
        with patch("app.config.sys.platform", "linux"):
            assert find_steam_dir() == ""


class TestLoadConfig:
    """Tests for load_config function"""

    @pytest.fixture
    def tmp_base_dir(self, tmp_path):
        (tmp_path / "data").mkdir()
        return tmp_path

    @pytest.fixture(autouse=True)
    def clean_env(self):
        keep = {k: v for k, v in os.environ.items() if not k.startswith("CHATSKIN_")}
        with patch.dict(os.environ, keep, clear=True), patch("app.config.load_dotenv"):
            yield

    def test_load_config_creates_defaults(self, tmp_base_dir):
        with patch("app.config._resolve_base_dir", return_value=tmp_base_dir):
            config = load_config()

            assert isinstance(config, Config)
            assert config.base_dir == tmp_base_dir
            assert config.cache_prefix == "f_"
            assert config.chat_url == CHAT_URL
            assert config.refresh_ttl_sec == 60.0
            assert config.patch_library is False
            assert config.notifications is True

    def test_load_config_default_cache_dir(self, tmp_base_dir):
        with patch("app.config._resolve_base_dir", return_value=tmp_base_dir):
            with patch.dict(os.environ, {"LOCALAPPDATA": str(tmp_base_dir / "Local")}):
                config = load_config()
        assert config.cache_dir == str(tmp_base_dir / "Local" / "Steam" / "htmlcache" / "Cache")

    def test_load_config_loads_from_json(self, tmp_base_dir):
        config_file = tmp_base_dir / "data" / "config.json"
        config_data = {
            "steam_dir": "D:\\Games\\Steam",
            "cache_dir": "D:\\cache",
            "scan_workers": 2,
            "patch_library": True,
        }
        config_file.write_text(json.dumps(config_data), encoding="utf-8")

        with patch("app.config._resolve_base_dir", return_value=tmp_base_dir):
            config = load_config()

            assert config.steam_dir == "D:\\Games\\Steam"
            assert config.cache_dir == "D:\\cache"
            assert config.scan_workers == 2
            assert config.patch_library is True

    def test_load_config_env_overrides_json(self, tmp_base_dir):
        config_file = tmp_base_dir / "data" / "config.json"
        config_file.write_text(json.dumps({"scan_workers": 2, "show_debug": False}), encoding="utf-8")

        with patch("app.config._resolve_base_dir", return_value=tmp_base_dir):
            with patch.dict(os.environ, {"CHATSKIN_SCAN_WORKERS": "6", "CHATSKIN_SHOW_DEBUG": "true"}):
                config = load_config()
                assert config.scan_workers == 6  # env overrides JSON
                assert config.show_debug is True

    def test_load_config_steam_dir_falls_back_to_registry(self, tmp_base_dir):
        with patch("app.config._resolve_base_dir", return_value=tmp_base_dir):
            with patch("app.config.find_steam_dir", return_value="C:\\Steam") as finder:
                config = load_config()
        finder.assert_called_once()
        assert config.steam_dir == "C:\\Steam"

    def test_load_config_handles_invalid_json(self, tmp_base_dir):
        (tmp_base_dir / "data" / "config.json").write_text("{ invalid json }", encoding="utf-8")
        with patch("app.config._resolve_base_dir", return_value=tmp_base_dir):
            assert load_config().scan_workers == 8

    def test_load_config_handles_empty_json(self, tmp_base_dir):
        (tmp_base_dir / "data" / "config.json").write_text("", encoding="utf-8")
        with patch("app.config._resolve_base_dir", return_value=tmp_base_dir):
            assert load_config().scan_workers == 8

    def test_load_config_handles_non_object_json(self, tmp_base_dir):
        (tmp_base_dir / "data" / "config.json").write_text("[1, 2]", encoding="utf-8")
        with patch("app.config._resolve_base_dir", return_value=tmp_base_dir):
            assert load_config().cache_prefix == "f_"

    def test_load_config_env_base_dir(self, tmp_path):
        custom_base = tmp_path / "custom"
        (custom_base / "data").mkdir(parents=True)
        with patch.dict(os.environ, {"CHATSKIN_BASE_DIR": str(custom_base)}):
            config = load_config()
            assert config.base_dir == custom_base

    def test_load_config_numeric_types(self, tmp_base_dir):
        with patch("app.config._resolve_base_dir", return_value=tmp_base_dir):
            config = load_config()
            assert isinstance(config.scan_workers, int)
            assert isinstance(config.http_timeout_sec, float)
            assert isinstance(config.watch_debounce_sec, float)
