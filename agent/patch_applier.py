# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: turns a matched cache entry into the patched one. writes the unpatched stylesheet next to the
client UI as friends.original.css (the patched copy imports it back), overwrites the cache entry with the
patched gzip bytes, makes sure the user's friends.custom.css exists, and nudges the client to reload the
friends window. the side-file write comes first: if it fails the cache entry is never touched.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import os  # for replacing the side-file atomically
import tempfile  # for staging the side-file next to its final location
import time  # for the delay between the two reload commands
from collections.abc import Callable  # type hint for the notify callback
from pathlib import Path  # for the client UI paths

from agent.asset_store import AssetStore
from agent.events import PublishFn, discard, make_event
from agent.host_process import HostProcess
from algorithm.stylesheet_patch import CUSTOM_NAME, ORIGINAL_NAME

RELOAD_OFFLINE = "steam://friends/status/offline"
RELOAD_ONLINE = "steam://friends/status/online"


class PatchError(RuntimeError):
    """an I/O step of applying the patch failed; the invocation is abandoned"""


def _write_atomic(path: Path, data: bytes) -> None:
    fd, tmp = tempfile.mkstemp(prefix=path.name, suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


class PatchApplier:
    def __init__(
        self,
        store: AssetStore,
        steam_dir: str,
        host: HostProcess | None = None,
        publish: PublishFn = discard,
        notify: Callable[[str], None] | None = None,
        reload_delay_sec: float = 1.0,
        restart_on_patch: bool = False,
        launch_args: str = "",
    ) -> None:
        self.store = store
        self.ui_dir = Path(steam_dir) / "clientui"  # where the loopback host serves friends UI files from
        self.host = host
        self.publish = publish
        self.notify = notify
        self.reload_delay = reload_delay_sec
        self.restart_on_patch = restart_on_patch
        self.launch_args = launch_args

    @property
    def original_path(self) -> Path:
        return self.ui_dir / ORIGINAL_NAME

    @property
    def custom_path(self) -> Path:
        return self.ui_dir / CUSTOM_NAME

    def _emit(self, level: str, message: str) -> None:
        self.publish(make_event("patcher", level, message))

    def apply(self, matched_path: str, decompressed_original: bytes) -> None:
        asset = self.store.get()  # one snapshot for the token and the patched bytes
        try:
            self.ui_dir.mkdir(parents=True, exist_ok=True)
            header = f"/*{asset.token or ''}*/\n".encode("ascii", errors="replace")
            _write_atomic(self.original_path, header + decompressed_original)

            self._emit("info", "Overwriting with patched version...")
            with open(matched_path, "wb") as f:  # in place, the client keeps its handle on the entry
                f.write(asset.patched)

            if not self.custom_path.exists():
                self.custom_path.touch()
        except OSError as e:
            raise PatchError(f"Failed to patch {matched_path}: {e}") from e

        self._reload_friends()
        self._emit("info", f"Done! Put your custom css in {self.custom_path}")
        self._emit("info", "Close and reopen your Steam friends window to see changes.")

        if self.restart_on_patch and self.host is not None:
            if self.host.shutdown():
                self.host.start(self.launch_args)

        if self.notify is not None:
            self.notify("Successfully patched friends!")

    def _reload_friends(self) -> None:
        host = self.host
        if host is None or not host.is_running() or not host.window_present():
            return
        self._emit("info", "Reloading friends window...")
        try:
            host.send(RELOAD_OFFLINE)
            time.sleep(self.reload_delay)
            host.send(RELOAD_ONLINE)
        except OSError as e:  # the patch itself is done, a failed nudge only costs a manual reopen
            self._emit("warning", f"Could not reload friends window: {e}")
