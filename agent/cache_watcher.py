# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: background trigger for the scan pipeline. watches the host's cache directory with watchdog and,
when prefixed cache entries are created or rewritten, fires one debounced callback (the client writes
many entries in a burst, we only want one scan per burst). can be toggled off and back on so a manual
scan can suspend it for its duration.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import os  # for checking the cache directory and file names
import threading  # for the debounce timer and toggle lock
from collections.abc import Callable  # type hint for the trigger callback

from watchdog.events import FileSystemEvent, FileSystemEventHandler  # filesystem event plumbing
from watchdog.observers import Observer  # native observer for the platform

from agent.events import PublishFn, discard, make_event


class _CacheEventHandler(FileSystemEventHandler):
    def __init__(self, watcher: CacheWatcher) -> None:
        self.watcher = watcher

    def _maybe(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = event.dest_path if getattr(event, "dest_path", "") else event.src_path
        if os.path.basename(os.fsdecode(path)).startswith(self.watcher.prefix):
            self.watcher.poke()

    def on_created(self, event):
        self._maybe(event)

    def on_modified(self, event):
        self._maybe(event)

    def on_moved(self, event):
        self._maybe(event)


class CacheWatcher:
    """Debounced watchdog observer over the cache directory."""

    def __init__(
        self,
        cache_dir: str,
        on_trigger: Callable[[], None],
        prefix: str = "f_",
        debounce_sec: float = 1.0,
        publish: PublishFn = discard,
    ) -> None:
        self.cache_dir = cache_dir
        self.on_trigger = on_trigger
        self.prefix = prefix
        self.debounce = debounce_sec
        self.publish = publish
        self._observer: Observer | None = None
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()  # guards observer + timer

    def _emit(self, level: str, message: str) -> None:
        self.publish(make_event("watcher", level, message))

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._observer is not None

    def toggle(self, enabled: bool) -> bool:
        """start or stop watching, returns whether the watcher is active afterwards"""
        if enabled:
            return self._start()
        self.stop()
        return False

    def _start(self) -> bool:
        with self._lock:
            if self._observer is not None:
                return True
            if not os.path.isdir(self.cache_dir):
                self._emit("warning", "Cache folder does not exist, cache scanner not started.")
                return False
            observer = Observer()
            observer.schedule(_CacheEventHandler(self), self.cache_dir, recursive=False)
            observer.daemon = True
            observer.start()
            self._observer = observer
        self._emit("info", "Cache scanner started.")
        return True

    def stop(self) -> None:
        with self._lock:
            observer, self._observer = self._observer, None
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        if observer is None:
            return
        observer.stop()
        if observer is not threading.current_thread():
            observer.join(timeout=10)
        self._emit("info", "Cache scanner stopped.")

    def poke(self) -> None:
        """restart the debounce window; the trigger fires once the burst goes quiet"""
        with self._lock:
            if self._observer is None:
                return  # suspended, drop the event
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.debounce, self._fire)
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
            if self._observer is None:
                return
        self.on_trigger()
