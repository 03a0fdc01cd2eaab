# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: thin wrapper around the host client process (Steam). answers "is it running" and "is the friends
window open", and sends it fire-and-forget commands (steam:// URIs, -shutdown, launch args) through its
own executable. only the window lookup is Windows-specific; everything else goes through psutil.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import os  # for building the executable path
import shlex  # for splitting user-supplied launch arguments
import subprocess  # for starting the client executable with a command
import sys  # for checking if we are on Windows
import time  # for the start-up poll

import psutil  # for finding the running client process

from agent.events import PublishFn, discard, make_event


class HostProcess:
    def __init__(
        self,
        steam_dir: str,
        process_name: str = "steam",
        window_class: str = "SDL_app",
        publish: PublishFn = discard,
    ) -> None:
        self.steam_dir = steam_dir
        self.process_name = process_name.lower()  # compared without ".exe" and case-insensitively
        self.window_class = window_class  # top-level window class of the friends window
        self.publish = publish

    @property
    def exe(self) -> str:
        return os.path.join(self.steam_dir, "Steam.exe")

    def _emit(self, level: str, message: str) -> None:
        self.publish(make_event("host", level, message))

    def _find(self) -> list[psutil.Process]:
        found = []
        for p in psutil.process_iter(attrs=["name"]):
            name = (p.info.get("name") or "").lower()
            if name.endswith(".exe"):
                name = name[:-4]
            if name == self.process_name:
                found.append(p)
        return found

    def is_running(self) -> bool:
        return bool(self._find())

    def window_present(self) -> bool:
        if sys.platform != "win32":
            return False  # no top-level window classes to look up elsewhere
        import ctypes

        return bool(ctypes.windll.user32.FindWindowW(self.window_class, None))

    def send(self, *args: str) -> None:
        """fire-and-forget: hand the arguments to the client executable and return immediately"""
        subprocess.Popen([self.exe, *args])

    def shutdown(self, timeout_sec: float = 30.0) -> bool:
        procs = self._find()
        self._emit("info", "Shutting down Steam...")
        self.send("-shutdown")
        if not procs:
            return True
        _, alive = psutil.wait_procs(procs, timeout=timeout_sec)
        if alive:
            self._emit(
                "error",
                "Could not successfully shutdown Steam, please manually shutdown Steam and try again.",
            )
            return False
        return True

    def start(self, launch_args: str = "", attempts: int = 10, interval_sec: float = 1.0) -> bool:
        self._emit("info", "Restarting Steam...")
        self.send(*shlex.split(launch_args, posix=False))
        for _ in range(attempts):
            if self.is_running():
                self._emit("info", "Steam started.")
                return True
            time.sleep(interval_sec)
        self._emit("error", "Failed to start Steam.")
        return False
