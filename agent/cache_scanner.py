# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: finds the live copy of the reference stylesheet inside the host's disk cache. the cache is a flat
directory of anonymous "f_*" blobs, so candidates are narrowed by size first, ordered newest-first, and
then compared byte-for-byte in a thread pool. the first worker that finds the unpatched original claims
the match, tells every other worker to stop, and hands the file to the patch callback right away.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import os  # for directory listing and file stats
import threading  # for the scan lock, the winner lock and the stop flag
from collections.abc import Callable  # type hint for the match callback
from concurrent.futures import ThreadPoolExecutor, as_completed  # worker pool for the comparisons
from dataclasses import dataclass  # for candidates and outcomes
from enum import Enum  # for the scan status

from agent.asset_store import Asset
from agent.events import PublishFn, discard, make_event
from algorithm.stylesheet_patch import decompress, is_gzip

# called with (matched_path, decompressed_original) from inside the matching worker
MatchFn = Callable[[str, bytes], None]


class ScanStatus(str, Enum):
    MATCHED = "matched"  # an unpatched original was found and handed to the patch callback
    ALREADY_PATCHED = "already_patched"  # only patched copies were found
    NOT_FOUND = "not_found"  # candidates existed but none matched
    CACHE_MISSING = "cache_missing"  # the cache directory does not exist
    NO_CANDIDATES = "no_candidates"  # nothing in the cache has the right name and size

    @property
    def environment_not_ready(self) -> bool:
        return self in (ScanStatus.CACHE_MISSING, ScanStatus.NO_CANDIDATES)


@dataclass(frozen=True)
class CacheCandidate:
    path: str
    size: int
    mtime: float


@dataclass(frozen=True)
class ScanOutcome:
    status: ScanStatus
    matched_path: str | None = None
    patched_already_present: bool = False
    candidates: int = 0


class CacheScanner:
    """Content-addressed search of the cache directory for the tracked stylesheet."""

    def __init__(self, prefix: str = "f_", max_workers: int | None = None, publish: PublishFn = discard) -> None:
        self.prefix = prefix  # cache entries we care about all start with this
        self.max_workers = max_workers or min(8, (os.cpu_count() or 1) + 4)
        self.publish = publish
        self._scan_lock = threading.Lock()  # held for a whole scan so two scans never interleave

    def _emit(self, level: str, message: str) -> None:
        self.publish(make_event("scanner", level, message))

    def candidates(self, cache_dir: str, sizes: set[int]) -> list[CacheCandidate]:
        """Top-level prefixed files whose size is one of `sizes`, newest first."""
        found: list[CacheCandidate] = []
        with os.scandir(cache_dir) as it:
            for entry in it:
                if not entry.name.startswith(self.prefix):
                    continue
                try:
                    if not entry.is_file(follow_symlinks=False):
                        continue
                    st = entry.stat()
                except OSError:  # entry vanished between listing and stat, the cache is volatile
                    continue
                if st.st_size in sizes:
                    found.append(CacheCandidate(entry.path, st.st_size, st.st_mtime))
        found.sort(key=lambda c: c.mtime, reverse=True)  # most recently touched is likeliest live
        return found

    @staticmethod
    def _read(path: str) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def scan(self, cache_dir: str, asset: Asset, on_match: MatchFn) -> ScanOutcome:
        with self._scan_lock:
            return self._scan(cache_dir, asset, on_match)

    def _scan(self, cache_dir: str, asset: Asset, on_match: MatchFn) -> ScanOutcome:
        self._emit("info", "Finding list of possible cache files...")
        if not os.path.isdir(cache_dir):
            self._emit("warning", "Cache folder does not exist.")
            return ScanOutcome(ScanStatus.CACHE_MISSING)

        sizes = {len(asset.original), len(asset.patched)} - {0}
        cands = self.candidates(cache_dir, sizes)
        if not cands:
            self._emit("warning", "No matching cache files found.")
            return ScanOutcome(ScanStatus.NO_CANDIDATES)
        self._emit("info", f"Found {len(cands)} possible cache files.")

        stop = threading.Event()  # one-shot, set by the winner
        winner_lock = threading.Lock()
        state: dict[str, object] = {"matched": None, "patched": False}

        def _check(cand: CacheCandidate) -> None:
            if stop.is_set():
                return  # someone already found the original, nothing left to do
            try:
                data = self._read(cand.path)
            except OSError:
                self._emit("debug", f"Error, {cand.path} could not be opened.")
                return
            if not is_gzip(data):
                return
            if len(data) == len(asset.original) and data == asset.original:
                with winner_lock:
                    if state["matched"] is not None:
                        return  # a duplicate original, the first one already won
                    state["matched"] = cand.path
                    stop.set()
                self._emit("info", f"Successfully found matching friends.css at {cand.path}.")
                on_match(cand.path, decompress(data))
            elif len(data) == len(asset.patched) and data == asset.patched:
                with winner_lock:
                    state["patched"] = True

        self._emit("info", "Checking cache files for match...")
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(_check, c) for c in cands]
            for fut in as_completed(futures):
                fut.result()  # re-raises patch failures from the winning worker

        matched = state["matched"]
        if matched is not None:
            return ScanOutcome(
                ScanStatus.MATCHED,
                matched_path=str(matched),
                patched_already_present=bool(state["patched"]),
                candidates=len(cands),
            )
        if state["patched"]:
            return ScanOutcome(ScanStatus.ALREADY_PATCHED, patched_already_present=True, candidates=len(cands))
        return ScanOutcome(ScanStatus.NOT_FOUND, candidates=len(cands))
