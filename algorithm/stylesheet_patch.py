# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: pure helpers for the tracked stylesheet: gzip detection, decompression, the override-import wrapper,
and deterministic recompression. the patched form is always derived from the original form through
build_patched() so the two can never drift apart.
"""

from __future__ import annotations  # lets us use string annotations before functions are defined

import gzip  # for compressing and decompressing the stylesheet bytes

GZIP_MAGIC = b"\x1f\x8b"  # first two bytes of every gzip member

LOOPBACK_HOST = "https://steamloopback.host"  # virtual host the client serves local UI files from
ORIGINAL_NAME = "friends.original.css"  # side-file with the unpatched stylesheet
CUSTOM_NAME = "friends.custom.css"  # user-authored overrides, never written by us


def is_gzip(data: bytes) -> bool:
    """True when data starts with the gzip magic header."""
    return len(data) >= 2 and data[:2] == GZIP_MAGIC


def decompress(data: bytes) -> bytes:
    return gzip.decompress(data)


def compress(data: bytes) -> bytes:
    """
    Gzip with a fixed header timestamp so the same input always yields the same bytes.
    the scanner compares cache files byte-for-byte, so the patched form has to be reproducible.
    """
    return gzip.compress(data, compresslevel=9, mtime=0)


def wrap_stylesheet(css: bytes, host: str = LOOPBACK_HOST) -> bytes:
    """
    Import the original and custom side-files first, then re-open a rule block around the original
    content. custom rules always come after the original ones.
    """
    preamble = (
        f'@import url("{host}/{ORIGINAL_NAME}");\n'
        f'@import url("{host}/{CUSTOM_NAME}");\n'
        "{"
    ).encode("ascii")
    return preamble + css + b"}"


def build_patched(original: bytes, host: str = LOOPBACK_HOST) -> bytes:
    """gunzip the downloaded stylesheet, wrap it, and gzip it again."""
    return compress(wrap_stylesheet(decompress(original), host=host))
