# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: beta patch for the stylesheets the client ships on disk (library, main, offline friends). these
are plain files, not cache entries, so each one is copied aside as <name>.original.css and rewritten as
two @imports (original, then custom) padded with tabs back to its original size. files already carrying
the /*patched*/ marker are left alone.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import shutil  # for copying the shipped stylesheet aside
from dataclasses import dataclass  # for the per-file targets
from pathlib import Path  # for the client UI paths

from agent.events import PublishFn, discard, make_event
from algorithm.stylesheet_patch import LOOPBACK_HOST

PATCHED_MARKER = b"/*patched*/"


@dataclass(frozen=True)
class _Target:
    name: str  # prefix for <name>.original.css / <name>.custom.css
    css: Path  # shipped stylesheet that gets rewritten
    ui_dir: Path  # directory the loopback host serves the side-files from


def import_header(name: str, host: str = LOOPBACK_HOST) -> bytes:
    return (
        PATCHED_MARKER
        + f'\n@import url("{host}/{name}.original.css");\n@import url("{host}/{name}.custom.css");\n'.encode(
            "ascii"
        )
    )


class LibraryPatcher:
    def __init__(self, steam_dir: str, publish: PublishFn = discard) -> None:
        steam = Path(steam_dir)
        self.library_dir = steam / "steamui"
        self.library_css = self.library_dir / "css" / "libraryroot.css"
        self.publish = publish
        self.targets = [
            _Target("libraryroot", self.library_css, self.library_dir),
            _Target("main", self.library_dir / "css" / "main.css", self.library_dir),
            _Target("ofriends", steam / "clientui" / "css" / "friends.css", steam / "clientui"),
        ]

    def _emit(self, level: str, message: str) -> None:
        self.publish(make_event("library", level, message))

    def patch(self) -> bool:
        if not (self.library_dir / "css").is_dir():
            self._emit("info", "Library UI directory not found.")
            return False
        if not self.library_css.exists():
            self._emit("info", "Library CSS not found.")
            return False

        self._emit("info", "Patching Library [BETA]...")
        for target in self.targets:
            try:
                self._patch_one(target)
            except OSError as e:
                self._emit("error", str(e))
                self._emit("error", f"{target.css} could not be patched, aborting...")
                return False
        self._emit("info", "Library patched! [BETA]")
        self._emit("info", f"Put custom library css in {self.library_dir / 'libraryroot.custom.css'}")
        return True

    def _patch_one(self, target: _Target) -> bool:
        if not target.css.exists():
            self._emit("debug", f"{target.css} not found, skipping.")
            return False
        content = target.css.read_bytes()
        if content.startswith(PATCHED_MARKER):
            self._emit("debug", f"{target.name} already patched.")
            return False

        original = target.ui_dir / f"{target.name}.original.css"
        custom = target.ui_dir / f"{target.name}.custom.css"
        if original.exists():
            original.unlink()
        shutil.copyfile(target.css, original)
        if not custom.exists():
            custom.touch()

        header = import_header(target.name)
        padding = b"\t" * max(0, len(content) - len(header))  # keep the shipped file size
        target.css.write_bytes(header + padding)
        return True
