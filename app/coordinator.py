# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: runs the fetch -> scan -> patch pipeline for both triggers (the cache watcher and a manual force
scan) and guarantees only one run is active at a time. every run suspends the watcher and puts it back
the way it was afterwards; manual runs also grey out the UI controls that could start a second run.
failures are turned into status events here and never escape to the caller's thread.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import os  # for checking the cache directory
import shutil  # for deleting the cache directory
import threading  # for the pipeline lock
from collections.abc import Callable  # type hints for UI callbacks

from agent.cache_scanner import CacheScanner, ScanOutcome, ScanStatus
from agent.cache_watcher import CacheWatcher
from agent.events import PublishFn, discard, make_event
from agent.host_process import HostProcess
from agent.library_patcher import LibraryPatcher
from agent.patch_applier import PatchApplier, PatchError
from agent.reference_fetcher import ReferenceFetcher

NOT_READY_HINT = "Please confirm that Steam is running and that the friends list is open and try again."


def _no_op_toggle(enabled: bool) -> None:
    pass


class ScanCoordinator:
    def __init__(
        self,
        cache_dir: str,
        fetcher: ReferenceFetcher,
        scanner: CacheScanner,
        applier: PatchApplier,
        library: LibraryPatcher | None = None,
        host: HostProcess | None = None,
        publish: PublishFn = discard,
        toggle_controls: Callable[[bool], None] = _no_op_toggle,
        launch_args: str = "",
        patch_library: bool = True,
    ) -> None:
        self.cache_dir = cache_dir
        self.fetcher = fetcher
        self.scanner = scanner
        self.applier = applier
        self.library = library
        self.host = host
        self.publish = publish
        self.toggle_controls = toggle_controls  # UI hook: False while a manual run is in progress
        self.launch_args = launch_args
        self.patch_library = patch_library  # library patching is opt-in (beta)
        self.watcher: CacheWatcher | None = None
        self._pipeline_lock = threading.Lock()  # exactly one pipeline run system-wide

    def _emit(self, level: str, message: str) -> None:
        self.publish(make_event("coordinator", level, message))

    def attach_watcher(self, watcher: CacheWatcher) -> None:
        self.watcher = watcher

    def _suspend_watcher(self) -> bool:
        if self.watcher is None:
            return False
        was_active = self.watcher.is_active
        self.watcher.toggle(False)
        return was_active

    def _resume_watcher(self, was_active: bool) -> None:
        if self.watcher is not None and was_active:
            self.watcher.toggle(True)

    # --- triggers ---

    def on_watcher_trigger(self) -> ScanOutcome | None:
        return self._run(force_update=False, manual=False)

    def force_scan(self, force_update: bool = False) -> ScanOutcome | None:
        return self._run(force_update=force_update, manual=True)

    def _run(self, force_update: bool, manual: bool) -> ScanOutcome | None:
        with self._pipeline_lock:
            was_active = self._suspend_watcher()
            if manual:
                self.toggle_controls(False)
                self._emit("info", "Force scan started.")
            try:
                outcome: ScanOutcome | None = None
                try:
                    outcome = self._pipeline(force_update)
                except PatchError as e:
                    self._emit("error", str(e))
                except Exception as e:  # a failed run must not take the watcher thread or UI down
                    self._emit("error", f"Scan failed: {e}")
                if self.library is not None and self.patch_library:
                    try:
                        self.library.patch()
                    except Exception as e:
                        self._emit("error", f"Library patch failed: {e}")
                return outcome
            finally:
                if manual:
                    self.toggle_controls(True)
                self._resume_watcher(was_active)

    def _pipeline(self, force_update: bool) -> ScanOutcome | None:
        if not self.fetcher.ensure(force_update):
            self._emit("error", "Friends.css could not be obtained, ending force check...")
            return None
        asset = self.fetcher.store.get()
        if not asset.usable:
            self._emit("error", "Friends.css could not be obtained, ending force check...")
            return None

        outcome = self.scanner.scan(self.cache_dir, asset, self.applier.apply)
        if outcome.status.environment_not_ready:
            self._emit("warning", NOT_READY_HINT)
        elif outcome.status is ScanStatus.ALREADY_PATCHED:
            self._emit("info", "Cache file is already patched.")
        elif outcome.status is ScanStatus.NOT_FOUND:
            self._emit("warning", "Cache file does not exist or is outdated.")
        return outcome

    # --- cache clearing ---

    def clear_cache(self, confirm: Callable[[str], bool]) -> bool:
        if not os.path.isdir(self.cache_dir):
            self._emit("warning", "Cache folder does not exist.")
            return False

        with self._pipeline_lock:
            host = self.host
            host_running = host is not None and host.is_running()
            if host is not None and host_running:
                if not confirm("Steam will need to be shutdown to clear cache. Restart automatically?"):
                    return False
                if not host.shutdown():
                    return False

            was_active = self._suspend_watcher()
            self.toggle_controls(False)
            try:
                self._emit("info", "Deleting cache files...")
                try:
                    shutil.rmtree(self.cache_dir)
                    self._emit("info", "Cache files deleted.")
                except OSError as e:
                    self._emit("error", "Some cache files in use, cannot delete.")
                    self._emit("error", str(e))

                if self.library is not None and self.library.library_css.exists():
                    self._emit("info", "Deleting patched library file...")
                    try:
                        self.library.library_css.unlink()
                    except OSError as e:
                        self._emit("error", str(e))
            finally:
                self._resume_watcher(was_active)
                if host is not None and host_running:
                    host.start(self.launch_args)
                self.toggle_controls(True)
        return True
