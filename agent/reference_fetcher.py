# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: keeps the AssetStore's reference stylesheet current. reads the chat client page to find the
stylesheet URL and its version token, skips the download when the token did not change, falls back
to the CDN copy (ETag as token) when the page does not give us a token, and rebuilds the patched form
whenever new bytes arrive. concurrent callers share one fetch: whoever claims the refresh slot fetches,
everyone else waits for it to finish.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import re  # for pulling the stylesheet URL and token out of the page
import time  # for refresh timestamps
from dataclasses import replace  # for re-stamping an unchanged asset

import requests  # HTTP client for the chat page and the stylesheet download

from agent.asset_store import Asset, AssetStore
from agent.events import PublishFn, discard, make_event
from algorithm.stylesheet_patch import build_patched, is_gzip

CHAT_URL = "https://steam-chat.com/chat/clientui/?l=&cc={locale}&build="
CDN_URL = "https://steamcommunity-a.akamaihd.net/public/css/webui/friends.css"
USER_AGENT = (
    "Mozilla/5.0 (Windows; U; Windows NT 10.0; en-US; Valve Steam Client/default/1596241936; ) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/79.0.3945.117 Safari/537.36"
)

_CSS_URL_RE = re.compile(r'(?<=<link href=")(.+friends.css.+)(?=" rel)')
_TOKEN_RE = re.compile(r"(?<=\?v=)(.*)(?=&)")


def extract_reference(document: str) -> tuple[str, str]:
    """
    Return (stylesheet_url, token) from the chat page. either may be "" when the page shape changed.
    """
    if not document:
        return "", ""
    m = _CSS_URL_RE.search(document)
    css_url = m.group(0).replace("&amp;", "&") if m else ""
    if not css_url:
        return "", ""
    t = _TOKEN_RE.search(css_url)
    return css_url, (t.group(0) if t else "")


class ReferenceFetcher:
    """Fetches the reference stylesheet into an AssetStore, at most one fetch at a time."""

    def __init__(
        self,
        store: AssetStore,
        publish: PublishFn = discard,
        session: requests.Session | None = None,
        chat_url: str = CHAT_URL,
        cdn_url: str = CDN_URL,
        locale: str = "",
        user_agent: str = USER_AGENT,
        timeout_sec: float = 15.0,
        poll_interval_sec: float = 0.02,
    ) -> None:
        self.store = store
        self.publish = publish
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = user_agent
        self.chat_url = chat_url
        self.cdn_url = cdn_url
        self.locale = locale
        self.timeout = timeout_sec
        self.poll_interval = poll_interval_sec

    def _emit(self, level: str, message: str) -> None:
        self.publish(make_event("fetcher", level, message))

    def ensure(self, force: bool = False) -> bool:
        """
        Make sure the store holds a usable asset. returns False only when the fetch failed and there is
        nothing usable to scan with.
        """
        if not force and self.store.is_fresh():
            return True  # refreshed less than a ttl ago, no network needed

        if not self.store.try_begin_refresh(force):
            # someone else is fetching (or just finished), wait for them instead of fetching twice
            self._emit("debug", "Stylesheet refresh already in progress, waiting...")
            return self.store.wait_until_idle(self.poll_interval).usable

        asset: Asset | None = None
        try:
            asset = self._refresh(self.store.get())
        except requests.RequestException as e:
            self._emit("error", "Failed to download friends.css.")
            self._emit("error", str(e))
            return False
        except Exception as e:  # corrupt gzip (zlib.error) and urllib3 read errors from raw streams
            self._emit("error", f"Downloaded friends.css could not be processed: {e}")
            return False
        finally:
            if asset is None:
                self.store.abort_refresh()  # the slot is released on every failure path

        if asset is None:
            self._emit("error", "Failed to download friends.css")
            return False
        self.store.commit(asset)
        return True

    def _refresh(self, current: Asset) -> Asset | None:
        self._emit("info", "Checking for latest friends.css...")
        document = self._get_text(self.chat_url.format(locale=self.locale))
        css_url, token = extract_reference(document)

        if token and token == current.token and current.usable:
            self._emit("info", "friends.css is already up to date.")
            return replace(current, refreshed_at=time.time())

        body = b""
        if not token:
            self._emit("debug", "Could not find etag, using latest.")
            body, token = self._get_raw(self.cdn_url)
            if not token:
                return None  # neither the page nor the CDN told us what version this is
            if token == current.token and current.usable:
                self._emit("info", "friends.css is already up to date.")
                return replace(current, refreshed_at=time.time())

        self._emit("debug", f"etag: {token}")
        if css_url:
            body, _ = self._get_raw(css_url)
        if not body:
            return None
        if not is_gzip(body):
            self._emit("error", "Downloaded friends.css is not gzip-encoded.")
            return None

        asset = Asset(
            original=body,
            patched=build_patched(body),
            token=token,
            refreshed_at=time.time(),
        )
        self._emit("info", "Successfully downloaded latest friends.css")
        return asset

    def _get_text(self, url: str) -> str:
        resp = self.session.get(url, timeout=self.timeout)
        try:
            resp.raise_for_status()
            resp.encoding = "utf-8"
            return resp.text
        finally:
            resp.close()

    def _get_raw(self, url: str) -> tuple[bytes, str]:
        """
        Download the body still gzip-encoded (the cache stores it that way) plus the ETag header.
        """
        resp = self.session.get(
            url, headers={"Accept-Encoding": "gzip"}, stream=True, timeout=self.timeout
        )
        try:
            resp.raise_for_status()
            data = resp.raw.read(decode_content=False)  # no transparent gunzip
            return data or b"", resp.headers.get("ETag") or ""
        finally:
            resp.close()
