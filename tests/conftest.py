from __future__ import annotations

import gzip
import struct
from typing import Any

import pytest

from agent.asset_store import Asset
from algorithm.stylesheet_patch import build_patched

CSS = b".friend { color: #ccc; }\n.chat { background: #222; }\n" * 40


def gzip_of_size(payload: bytes, size: int) -> bytes:
    """
    Valid gzip member of exactly `size` bytes: the deflate stream is padded with an FNAME header field.
    """
    body = gzip.compress(payload, mtime=0)[10:]  # deflate data + crc32 + isize
    name_len = size - 10 - len(body) - 1
    assert name_len >= 1, "size too small for payload"
    header = b"\x1f\x8b\x08\x08" + struct.pack("<I", 0) + b"\x02\xff"
    data = header + b"n" * name_len + b"\x00" + body
    assert len(data) == size
    return data


def make_asset(size: int = 12000, token: str = "tok1", payload: bytes = CSS, refreshed_at: float = 0.0) -> Asset:
    original = gzip_of_size(payload, size)
    return Asset(original=original, patched=build_patched(original), token=token, refreshed_at=refreshed_at)


@pytest.fixture
def asset() -> Asset:
    return make_asset()


@pytest.fixture
def events() -> list[dict[str, Any]]:
    return []


@pytest.fixture
def publish(events):
    return events.append


def messages(events: list[dict[str, Any]], level: str | None = None) -> list[str]:
    return [e["message"] for e in events if level is None or e["level"] == level]
