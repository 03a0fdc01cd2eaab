# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: shape of the status events every component publishes. the console (or a test) subscribes to these,
so nothing in agent/ or app/coordinator.py ever prints directly.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

# type alias for the publish callback, takes an event dict and returns nothing
PublishFn = Callable[[dict[str, Any]], None]

LEVELS = ("debug", "info", "warning", "error")


def make_event(source: str, level: str, message: str, **extra: Any) -> dict[str, Any]:
    if level not in LEVELS:
        raise ValueError(f"unknown event level: {level}")
    event: dict[str, Any] = {"source": source, "level": level, "message": message, "ts": time.time()}
    event.update(extra)
    return event


def discard(event: dict[str, Any]) -> None:
    """publish sink for callers that do not care about status output"""
