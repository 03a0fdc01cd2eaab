# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: asks the release feed for the latest tag and compares it with the running version.
"""

from __future__ import annotations

import re

import requests

from agent.events import PublishFn, discard, make_event

RELEASE_FEED_URL = "https://api.github.com/repos/phantomgamers/steamfriendspatcher/releases/latest"

_VERSION_RE = re.compile(r"^v?(\d+(?:\.\d+)*)$")


def parse_version(raw: str) -> tuple[int, ...]:
    """
    "v1.2.3-beta+build.4" -> (1, 2, 3). raises ValueError for anything that is not dotted integers.
    """
    core = raw.strip().split("+", 1)[0].split("-", 1)[0]
    m = _VERSION_RE.match(core)
    if not m:
        raise ValueError(f"not a version: {raw!r}")
    parts = [int(p) for p in m.group(1).split(".")]
    while len(parts) > 1 and parts[-1] == 0:
        parts.pop()  # 1.2.0 == 1.2
    return tuple(parts)


def check_for_update(
    current_version: str,
    session: requests.Session | None = None,
    feed_url: str = RELEASE_FEED_URL,
    publish: PublishFn = discard,
    timeout_sec: float = 10.0,
) -> str | None:
    """returns the newer release tag, or None when up to date or the check failed"""

    def emit(level: str, message: str) -> None:
        publish(make_event("update", level, message))

    emit("info", "Checking for updates...")
    session = session or requests.Session()
    try:
        resp = session.get(feed_url, timeout=timeout_sec)
        resp.raise_for_status()
        latest = str(resp.json().get("tag_name") or "")
    except (requests.RequestException, ValueError) as e:
        emit("error", "Failed to check for updates.")
        emit("error", str(e))
        return None

    if not latest:
        emit("error", "Failed to check for updates.")
        return None
    try:
        newer = parse_version(latest) > parse_version(current_version)
    except ValueError:
        emit("error", "Update check failed, failed to parse version string.")
        return None

    if newer:
        emit("info", f"Update available: {latest}")
        return latest
    emit("info", "No updates found.")
    return None
