# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: main launcher for ChatSkin: wires the asset store, fetcher, scanner, patcher and coordinator together,
starts the cache watcher, and optionally shows a system tray icon with Force Scan / Clear Cache entries.
every component publishes status events onto an EventBus; the console prints them through one logger so
messages from parallel scan workers never interleave mid-line.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import argparse  # for parsing command line arguments
import logging  # for the console log sink
import sys  # for the exit code
import threading  # for running scans off the tray thread
from collections.abc import Callable  # type hint for event sinks
from datetime import datetime  # for the timestamp in each printed line
from typing import Any  # type hint for flexible dictionary values

import requests  # shared HTTP session for the fetcher and the update check
from colorama import init as _colorama_init  # ANSI colors on Windows terminals

from agent.asset_store import AssetStore
from agent.cache_scanner import CacheScanner, ScanStatus
from agent.cache_watcher import CacheWatcher
from agent.host_process import HostProcess
from agent.library_patcher import LibraryPatcher
from agent.patch_applier import PatchApplier
from agent.reference_fetcher import ReferenceFetcher
from agent.update_check import check_for_update
from app.config import Config, load_config
from app.coordinator import ScanCoordinator

VERSION = "1.0.0"

# optional tray support
try:
    import pystray  # type: ignore  # try to import pystray for system tray support
    from PIL import Image, ImageDraw  # type: ignore  # try to import PIL for the tray icon

    HAVE_TRAY = True  # flag indicating system tray is available
except Exception:  # no display / backend on this machine
    HAVE_TRAY = False

# set root logging level high enough so library warnings do not spam the console
logging.basicConfig(level=logging.ERROR)
logging.getLogger("urllib3").setLevel(logging.CRITICAL)  # connection pool chatter
logging.getLogger("watchdog").setLevel(logging.CRITICAL)

log = logging.getLogger("chatskin")


# --- ASCII banner ---
def print_banner() -> None:
    try:
        _colorama_init()  # enable ANSI color codes on Windows terminals
        cyan = "\x1b[36m"
        mag = "\x1b[35m"
        dim = "\x1b[2m"
        bold = "\x1b[1m"
        reset = "\x1b[0m"
    except Exception:  # console without ANSI support
        cyan = mag = dim = bold = reset = ""

    banner = rf"""
{dim}┌──────────────────────────────────────────────┐{reset}
{dim}│{reset}{cyan}{bold}           C  h  a  t  S  k  i  n{reset}{dim}                 │{reset}
{dim}├──────────────────────────────────────────────┤{reset}
{mag}   your styles, the client's cache, kept in sync  {reset}
{dim}│{reset}  Tip: press {cyan}Ctrl+C{reset} to quit.                     {dim}│{reset}
{dim}└──────────────────────────────────────────────┘{reset}
"""
    print(banner)


# --- end banner ---


class LevelFormatter(logging.Formatter):
    """[date][Level] message, with the level tag colored the way the old output window did it"""

    COLORS = {
        logging.ERROR: "\x1b[31m",  # red
        logging.WARNING: "\x1b[33m",  # amber
    }

    def __init__(self, use_color: bool = True) -> None:
        super().__init__("%(message)s")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.capitalize()
        msg = record.getMessage()
        if not self.use_color:
            return f"[{stamp}][{level}] {msg}"
        purple = "\x1b[35m"
        reset = "\x1b[0m"
        color = self.COLORS.get(record.levelno, purple)
        return f"{purple}[{stamp}]{reset}{color}[{level}]{reset} {msg}"


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class EventPrinter:
    """synchronous sink: renders events through the chatskin logger, one at a time"""

    def __init__(self, logger: logging.Logger = log, show_debug: bool = False) -> None:
        self.logger = logger
        self.show_debug = show_debug
        self._lock = threading.Lock()  # first to acquire, first printed

    def __call__(self, event: dict[str, Any]) -> None:
        level = _LEVELS.get(str(event.get("level", "info")), logging.INFO)
        if level == logging.DEBUG and not self.show_debug:
            return
        with self._lock:
            self.logger.log(level, "%s", event.get("message", ""))


def setup_logging(use_color: bool = True) -> None:
    if use_color:
        _colorama_init()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(LevelFormatter(use_color=use_color))
    log.handlers[:] = [handler]
    log.setLevel(logging.DEBUG)
    log.propagate = False  # prevent duplicate messages from the root handler


# fan-out EventBus
class EventBus:
    """fan-out: every sink sees every event, in registration order, on the publishing thread."""

    def __init__(self, sinks: list[Callable[[dict[str, Any]], None]] | None = None) -> None:
        self._sinks = tuple(sinks or ())  # fixed at construction, called inline in publish order

    def publish(self, event: dict[str, Any]) -> None:
        for sink in self._sinks:
            sink(event)


class Controls:
    """enabled state of the UI entries that can start a pipeline run"""

    def __init__(self) -> None:
        self.enabled = True
        self.on_change: Callable[[], None] | None = None  # e.g. tray menu refresh

    def toggle(self, enabled: bool) -> None:
        self.enabled = enabled
        if self.on_change is not None:
            self.on_change()


class App:
    """all long-lived components for one session, built from a Config"""

    def __init__(self, cfg: Config, bus: EventBus, session: requests.Session | None = None) -> None:
        self.cfg = cfg
        self.bus = bus
        self.session = session or requests.Session()
        self.controls = Controls()
        self.tray = None  # pystray.Icon once started
        self.quit = threading.Event()  # set from the tray menu
        publish = bus.publish

        self.store = AssetStore(ttl_sec=cfg.refresh_ttl_sec)
        self.fetcher = ReferenceFetcher(
            self.store,
            publish=publish,
            session=self.session,
            chat_url=cfg.chat_url,
            cdn_url=cfg.cdn_url,
            locale=cfg.locale,
            user_agent=cfg.user_agent,
            timeout_sec=cfg.http_timeout_sec,
            poll_interval_sec=cfg.poll_interval_sec,
        )
        self.scanner = CacheScanner(prefix=cfg.cache_prefix, max_workers=cfg.scan_workers, publish=publish)
        self.host = HostProcess(cfg.steam_dir, publish=publish)
        self.applier = PatchApplier(
            self.store,
            cfg.steam_dir,
            host=self.host,
            publish=publish,
            notify=self.notify,
            reload_delay_sec=cfg.reload_delay_sec,
            restart_on_patch=cfg.restart_on_patch,
            launch_args=cfg.launch_args,
        )
        self.library = LibraryPatcher(cfg.steam_dir, publish=publish)
        self.coordinator = ScanCoordinator(
            cfg.cache_dir,
            self.fetcher,
            self.scanner,
            self.applier,
            library=self.library,
            host=self.host,
            publish=publish,
            toggle_controls=self.controls.toggle,
            launch_args=cfg.launch_args,
            patch_library=cfg.patch_library,
        )
        self.watcher = CacheWatcher(
            cfg.cache_dir,
            on_trigger=self.coordinator.on_watcher_trigger,
            prefix=cfg.cache_prefix,
            debounce_sec=cfg.watch_debounce_sec,
            publish=publish,
        )
        self.coordinator.attach_watcher(self.watcher)

    def notify(self, message: str) -> None:
        # tray balloon only; the console already printed the status lines
        if self.tray is not None and self.cfg.notifications:
            try:
                self.tray.notify(message, "ChatSkin")
            except Exception:  # some tray backends cannot show notifications
                pass

    def force_scan_async(self, force_update: bool = False) -> None:
        threading.Thread(
            target=self.coordinator.force_scan,
            kwargs={"force_update": force_update},
            name="force-scan",
            daemon=True,
        ).start()

    def start_tray(self) -> bool:
        if not HAVE_TRAY:
            return False

        img = Image.new("RGB", (64, 64), (118, 96, 138))  # plain purple square
        ImageDraw.Draw(img).rectangle((16, 16, 48, 48), fill=(255, 255, 255))

        def can_run(item) -> bool:  # type: ignore
            return self.controls.enabled

        def on_scan(icon, item):  # type: ignore
            self.force_scan_async()

        def on_scan_update(icon, item):  # type: ignore
            self.force_scan_async(force_update=True)

        def on_toggle_watcher(icon, item):  # type: ignore
            self.watcher.toggle(not self.watcher.is_active)

        def on_clear(icon, item):  # type: ignore
            # the menu click is the confirmation
            threading.Thread(
                target=self.coordinator.clear_cache, args=(lambda q: True,), name="clear-cache", daemon=True
            ).start()

        def on_quit(icon, item):  # type: ignore
            self.quit.set()

        menu = pystray.Menu(
            pystray.MenuItem("Force Scan", on_scan, enabled=can_run),
            pystray.MenuItem("Force Scan (update stylesheet)", on_scan_update, enabled=can_run),
            pystray.MenuItem(
                "Cache Scanner", on_toggle_watcher, checked=lambda item: self.watcher.is_active, enabled=can_run
            ),
            pystray.MenuItem("Clear Cache", on_clear, enabled=can_run),
            pystray.MenuItem("Quit", on_quit),
        )
        icon = pystray.Icon("ChatSkin", img, "ChatSkin", menu)
        self.tray = icon
        self.controls.on_change = icon.update_menu
        threading.Thread(target=icon.run, name="tray", daemon=True).start()
        return True


def _ask(question: str) -> bool:
    try:
        return input(f"{question} [y/N] ").strip().lower() in ("y", "yes")
    except EOFError:
        return False


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="ChatSkin")
    parser.add_argument("--scan", action="store_true", help="run one force scan and exit")
    parser.add_argument(
        "--force-update", action="store_true", help="re-download the stylesheet even if it is fresh"
    )
    parser.add_argument("--no-watch", action="store_true", help="do not start the cache scanner")
    parser.add_argument("--tray", action="store_true", help="show a system tray icon (if available)")
    parser.add_argument("--clear-cache", action="store_true", help="delete the client's cache and exit")
    parser.add_argument("--check-updates", action="store_true", help="check the release feed and exit")
    parser.add_argument("--no-color", action="store_true", help="plain console output")
    args = parser.parse_args(argv)

    cfg = load_config()
    setup_logging(use_color=not args.no_color)
    printer = EventPrinter(show_debug=cfg.show_debug)
    bus = EventBus(sinks=[printer])

    if not cfg.steam_dir:
        log.error("Steam install directory not found. Set CHATSKIN_STEAM_DIR or steam_dir in data/config.json.")
        return 2

    app = App(cfg, bus)

    if args.check_updates:
        latest = check_for_update(
            VERSION, session=app.session, feed_url=cfg.release_feed_url, publish=bus.publish
        )
        return 0 if latest is None else 1

    if args.clear_cache:
        return 0 if app.coordinator.clear_cache(_ask) else 1

    if args.scan:
        outcome = app.coordinator.force_scan(force_update=args.force_update)
        ok = outcome is not None and outcome.status in (ScanStatus.MATCHED, ScanStatus.ALREADY_PATCHED)
        return 0 if ok else 1

    print_banner()
    if not args.no_watch:
        app.watcher.toggle(True)
    if args.tray:
        app.start_tray()
    # warm the store so the first watcher trigger does not wait on the network
    threading.Thread(target=app.fetcher.ensure, name="prefetch", daemon=True).start()

    try:
        while not app.quit.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        app.watcher.stop()
        if app.tray is not None:
            app.tray.stop()
    log.info("Shutting down ChatSkin...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
