# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: owns the tracked stylesheet (original + patched gzip bytes, freshness token, refresh time) and the
"refresh in progress" flag. every read returns a whole snapshot and every write replaces the whole record,
so no caller can ever see an original paired with a stale patched form.
"""

from __future__ import annotations  # lets us use string annotations like "Asset" before the class is defined

import threading  # for the condition guarding the asset and the refresh flag
import time  # for refresh timestamps
from dataclasses import dataclass  # for the immutable asset record


@dataclass(frozen=True)
class Asset:
    original: bytes  # gzip bytes exactly as downloaded
    patched: bytes  # gzip(wrap(gunzip(original)))
    token: str | None  # remote freshness token, opaque
    refreshed_at: float  # epoch seconds of the last successful refresh, 0 means never

    @classmethod
    def empty(cls) -> Asset:
        return cls(original=b"", patched=b"", token=None, refreshed_at=0.0)

    @property
    def usable(self) -> bool:
        return bool(self.original) and bool(self.patched)


class AssetStore:
    """Mutex-guarded holder for the current Asset plus the refresh flag."""

    def __init__(self, ttl_sec: float = 60.0, clock=time.time) -> None:
        self.ttl = ttl_sec  # how long a refreshed asset counts as fresh
        self._clock = clock  # injectable for tests
        self._cond = threading.Condition()  # one lock for asset + flag, also wakes waiters
        self._asset = Asset.empty()
        self._refreshing = False

    def get(self) -> Asset:
        with self._cond:
            return self._asset

    @property
    def is_refreshing(self) -> bool:
        with self._cond:
            return self._refreshing

    def _fresh_locked(self) -> bool:
        refreshed = self._asset.refreshed_at
        return refreshed > 0 and (self._clock() - refreshed) < self.ttl

    def is_fresh(self) -> bool:
        with self._cond:
            return self._fresh_locked()

    def try_begin_refresh(self, force: bool = False) -> bool:
        """
        Claim the refresh slot. returns False (and changes nothing) when another refresh is running,
        or when the asset was refreshed within the ttl and force is not set.
        """
        with self._cond:
            if self._refreshing:
                return False
            if not force and self._fresh_locked():
                return False
            self._refreshing = True
            return True

    def commit(self, asset: Asset) -> None:
        with self._cond:
            self._asset = asset
            self._refreshing = False
            self._cond.notify_all()

    def abort_refresh(self) -> None:
        with self._cond:
            self._refreshing = False
            self._cond.notify_all()

    def wait_until_idle(self, poll_interval: float = 0.02) -> Asset:
        """
        Block until no refresh is in flight and return the asset at that moment.
        no upper bound: a stuck refresh is bounded by the transport timeout of the fetch itself.
        """
        with self._cond:
            while self._refreshing:
                self._cond.wait(timeout=poll_interval)
            return self._asset
