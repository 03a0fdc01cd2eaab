"""
Tests for agent.cache_scanner - CacheScanner functionality
Tests candidate selection, newest-first ordering, first-match-wins and the outcome states.
Uses real files under tmp_path; reads are spied on to prove wrong-size entries are never opened.
"""

from __future__ import annotations

import os
from unittest.mock import MagicMock, patch

import pytest

from agent.asset_store import AssetStore
from agent.cache_scanner import CacheScanner, ScanOutcome, ScanStatus
from agent.patch_applier import PatchApplier
from algorithm.stylesheet_patch import decompress
from conftest import CSS, gzip_of_size, make_asset, messages


def write(path, data: bytes, mtime: float) -> str:
    path.write_bytes(data)
    os.utime(path, (mtime, mtime))
    return str(path)


@pytest.fixture
def cache_dir(tmp_path):
    d = tmp_path / "Cache"
    d.mkdir()
    return d


class TestCandidates:
    def test_filters_by_prefix_and_size_newest_first(self, cache_dir):
        write(cache_dir / "f_a", b"x" * 10, 100)
        write(cache_dir / "f_b", b"x" * 10, 300)
        write(cache_dir / "f_c", b"x" * 11, 400)
        write(cache_dir / "index", b"x" * 10, 500)
        (cache_dir / "f_dir").mkdir()

        found = CacheScanner().candidates(str(cache_dir), {10})
        assert [os.path.basename(c.path) for c in found] == ["f_b", "f_a"]
        assert all(c.size == 10 for c in found)

    def test_custom_prefix(self, cache_dir):
        write(cache_dir / "data_1", b"x" * 10, 100)
        write(cache_dir / "f_1", b"x" * 10, 100)
        found = CacheScanner(prefix="data_").candidates(str(cache_dir), {10})
        assert [os.path.basename(c.path) for c in found] == ["data_1"]


class TestScan:
    def test_five_file_cache_selects_the_single_match(self, cache_dir, asset, events):
        other_css = gzip_of_size(b".other{}" * 100, 12000)
        paths = {
            "f_000001": write(cache_dir / "f_000001", os.urandom(11999), 1000),
            "f_000002": write(cache_dir / "f_000002", other_css, 5000),
            "f_000003": write(cache_dir / "f_000003", os.urandom(12000), 4000),
            "f_000004": write(cache_dir / "f_000004", os.urandom(15000), 2000),
            "f_000005": write(cache_dir / "f_000005", asset.original, 3000),
        }
        scanner = CacheScanner(max_workers=1, publish=events.append)
        on_match = MagicMock()

        with patch.object(scanner, "_read", wraps=CacheScanner._read) as spy:
            outcome = scanner.scan(str(cache_dir), asset, on_match)

        assert outcome.status is ScanStatus.MATCHED
        assert outcome.matched_path == paths["f_000005"]
        assert outcome.candidates == 3
        on_match.assert_called_once_with(paths["f_000005"], CSS)

        read = [c.args[0] for c in spy.call_args_list]
        assert paths["f_000001"] not in read
        assert paths["f_000004"] not in read
        # single worker walks newest first: both same-size non-matches are read and skipped first
        assert read == [paths["f_000002"], paths["f_000003"], paths["f_000005"]]
        assert "Found 3 possible cache files." in messages(events, "info")

    def test_missing_cache_dir_is_not_ready(self, tmp_path, asset, events):
        on_match = MagicMock()
        outcome = CacheScanner(publish=events.append).scan(str(tmp_path / "nope"), asset, on_match)
        assert outcome == ScanOutcome(ScanStatus.CACHE_MISSING)
        assert outcome.status.environment_not_ready
        on_match.assert_not_called()
        assert "Cache folder does not exist." in messages(events, "warning")

    def test_no_candidates_is_not_ready(self, cache_dir, asset):
        write(cache_dir / "f_1", b"tiny", 100)
        on_match = MagicMock()
        outcome = CacheScanner().scan(str(cache_dir), asset, on_match)
        assert outcome.status is ScanStatus.NO_CANDIDATES
        assert outcome.status.environment_not_ready
        on_match.assert_not_called()

    def test_same_size_without_match_is_not_found(self, cache_dir, asset):
        write(cache_dir / "f_1", gzip_of_size(b".x{}" * 40, len(asset.original)), 100)
        outcome = CacheScanner().scan(str(cache_dir), asset, MagicMock())
        assert outcome.status is ScanStatus.NOT_FOUND
        assert not outcome.status.environment_not_ready
        assert outcome.candidates == 1

    def test_only_patched_copy_reports_already_patched(self, cache_dir, asset):
        write(cache_dir / "f_1", asset.patched, 100)
        on_match = MagicMock()
        outcome = CacheScanner().scan(str(cache_dir), asset, on_match)
        assert outcome.status is ScanStatus.ALREADY_PATCHED
        assert outcome.patched_already_present is True
        on_match.assert_not_called()

    def test_duplicate_originals_patch_exactly_once(self, cache_dir, asset):
        for i in range(6):
            write(cache_dir / f"f_{i}", asset.original, 100 + i)
        on_match = MagicMock()
        outcome = CacheScanner(max_workers=4).scan(str(cache_dir), asset, on_match)
        assert outcome.status is ScanStatus.MATCHED
        assert on_match.call_count == 1
        assert on_match.call_args.args[0] == outcome.matched_path

    def test_non_gzip_same_size_file_is_skipped(self, cache_dir, asset):
        write(cache_dir / "f_1", b"A" * len(asset.original), 100)
        outcome = CacheScanner().scan(str(cache_dir), asset, MagicMock())
        assert outcome.status is ScanStatus.NOT_FOUND

    def test_patch_failure_propagates(self, cache_dir, asset):
        write(cache_dir / "f_1", asset.original, 100)
        on_match = MagicMock(side_effect=RuntimeError("disk full"))
        with pytest.raises(RuntimeError, match="disk full"):
            CacheScanner().scan(str(cache_dir), asset, on_match)

    def test_match_hands_over_decompressed_bytes(self, cache_dir, asset):
        path = write(cache_dir / "f_1", asset.original, 100)
        seen: list[tuple[str, bytes]] = []
        CacheScanner().scan(str(cache_dir), asset, lambda p, data: seen.append((p, data)))
        assert seen == [(path, decompress(asset.original))]


class TestScanWithApplier:
    def test_rescan_after_patch_is_already_patched(self, tmp_path, cache_dir):
        asset = make_asset(token="tok9")
        store = AssetStore()
        store.commit(asset)
        entry = write(cache_dir / "f_live", asset.original, 100)
        applier = PatchApplier(store, str(tmp_path / "Steam"))
        scanner = CacheScanner()

        first = scanner.scan(str(cache_dir), store.get(), applier.apply)
        assert first.status is ScanStatus.MATCHED
        with open(entry, "rb") as f:
            assert f.read() == asset.patched
        assert applier.original_path.read_bytes() == b"/*tok9*/\n" + CSS

        second = scanner.scan(str(cache_dir), store.get(), applier.apply)
        assert second.status is ScanStatus.ALREADY_PATCHED
        with open(entry, "rb") as f:
            assert f.read() == asset.patched
