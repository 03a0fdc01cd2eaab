# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: configuration loader for ChatSkin. loads settings from data/config.json and CHATSKIN_* environment
      variables, with sensible defaults. finds the Steam install through the registry on Windows when no
      path is configured, and handles PyInstaller frozen executables by detecting the base directory
      correctly. returns a frozen Config dataclass.
"""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from agent.reference_fetcher import CDN_URL, CHAT_URL, USER_AGENT
from agent.update_check import RELEASE_FEED_URL

ENV_PREFIX = "CHATSKIN_"


# figure out where the app is running from (handles PyInstaller bundles)
def _resolve_base_dir() -> Path:
    # if we are frozen (PyInstaller), use the executable's directory
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent
    # otherwise, go up one level from this file (app/config.py -> project root)
    return Path(__file__).resolve().parents[1]


def find_steam_dir() -> str:
    """SteamPath from HKCU\\SOFTWARE\\Valve\\Steam, or "" off Windows / when Steam is not installed"""
    if sys.platform != "win32":
        return ""
    import winreg

    try:
        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, r"SOFTWARE\Valve\Steam") as key:
            value, _ = winreg.QueryValueEx(key, "SteamPath")
    except OSError:
        return ""
    return str(value).replace("/", "\\")


def _default_cache_dir() -> str:
    local = os.getenv("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
    return str(Path(local) / "Steam" / "htmlcache" / "Cache")


# frozen dataclass to hold all config values (immutable once created)
@dataclass(frozen=True)
class Config:
    base_dir: Path  # root directory of the project
    steam_dir: str  # Steam install directory ("" when unknown)
    cache_dir: str  # Chromium disk cache of the Steam client
    cache_prefix: str  # name prefix of cache entries
    chat_url: str  # chat client page that links the stylesheet
    cdn_url: str  # direct stylesheet URL used when the page gives no token
    locale: str  # country code sent to the chat page
    user_agent: str  # user agent for both requests
    http_timeout_sec: float  # per-request transport timeout
    refresh_ttl_sec: float  # how long a downloaded stylesheet counts as fresh
    poll_interval_sec: float  # wait interval while another refresh is running
    scan_workers: int  # comparison threads per scan
    reload_delay_sec: float  # gap between the offline/online reload commands
    watch_debounce_sec: float  # quiet period before the watcher triggers a scan
    patch_library: bool  # also patch the on-disk library stylesheets (beta)
    restart_on_patch: bool  # restart Steam after a successful patch
    launch_args: str  # arguments used when restarting Steam
    show_debug: bool  # print debug events
    notifications: bool  # show tray notifications
    release_feed_url: str  # release feed for the update check


def _coerce(raw: str, default):
    # try to coerce to the default's type; bool first since bool is an int
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        try:
            return int(raw)
        except Exception:
            return default
    if isinstance(default, float):
        try:
            return float(raw)
        except Exception:
            return default
    # for strings, just return the env var as-is
    return raw


# get a config value with priority: environment variable > JSON file > default
def _get(obj: dict, key: str, default):
    env = os.getenv(f"{ENV_PREFIX}{key.upper()}")
    if env is not None:
        return _coerce(env, default)
    return obj.get(key, default)


# load configuration from .env, JSON file and environment variables
def load_config() -> Config:
    load_dotenv()  # pick up a .env file if there is one
    # base directory can be overridden by env var, otherwise auto-detect
    base = Path(os.getenv(f"{ENV_PREFIX}BASE_DIR") or _resolve_base_dir())
    cfg_file = base / "data" / "config.json"
    obj = {}
    if cfg_file.exists():
        try:
            obj = json.loads(cfg_file.read_text(encoding="utf-8") or "{}")
        except Exception:
            # if JSON is broken, just use empty dict (all defaults)
            obj = {}
        if not isinstance(obj, dict):
            obj = {}

    steam_dir = _get(obj, "steam_dir", "") or find_steam_dir()
    return Config(
        base_dir=base,
        steam_dir=steam_dir,
        cache_dir=_get(obj, "cache_dir", "") or _default_cache_dir(),
        cache_prefix=_get(obj, "cache_prefix", "f_"),
        chat_url=_get(obj, "chat_url", CHAT_URL),
        cdn_url=_get(obj, "cdn_url", CDN_URL),
        locale=_get(obj, "locale", ""),
        user_agent=_get(obj, "user_agent", USER_AGENT),
        http_timeout_sec=_get(obj, "http_timeout_sec", 15.0),
        refresh_ttl_sec=_get(obj, "refresh_ttl_sec", 60.0),
        poll_interval_sec=_get(obj, "poll_interval_sec", 0.02),
        scan_workers=_get(obj, "scan_workers", 8),
        reload_delay_sec=_get(obj, "reload_delay_sec", 1.0),
        watch_debounce_sec=_get(obj, "watch_debounce_sec", 1.0),
        patch_library=_get(obj, "patch_library", False),
        restart_on_patch=_get(obj, "restart_on_patch", False),
        launch_args=_get(obj, "launch_args", ""),
        show_debug=_get(obj, "show_debug", False),
        notifications=_get(obj, "notifications", True),
        release_feed_url=_get(obj, "release_feed_url", RELEASE_FEED_URL),
    )
