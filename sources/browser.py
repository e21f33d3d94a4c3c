"""
Process-wide headless browser shared by the browser-driven sources.

One ``BrowserSession`` owns the Playwright handle.  It is started lazily
by the first caller (concurrent first callers await the same launch),
every page interaction runs under one ``asyncio.Lock``, and any
unrecoverable automation error tears the handle down so the next call
launches a fresh one.  Callers that were queued on the lock when the
teardown happened get the caller-supplied default for their turn.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from config.settings import BrowserConfig, SearchConfig
from sources.base import ImageSource
from utils.log_config import get_logger
from utils.retry import RetryPolicy, Sleeper, retry_call

log = get_logger(__name__)

T = TypeVar("T")


@dataclass
class BrowserHandle:
    """A live page plus the coroutine that shuts everything behind it down."""

    page:  Any
    close: Callable[[], Awaitable[None]]


Launcher = Callable[[BrowserConfig], Awaitable[BrowserHandle]]


async def launch_chromium(cfg: BrowserConfig) -> BrowserHandle:
    """Start Playwright + Chromium and open one page."""
    from playwright.async_api import async_playwright

    pw = await async_playwright().start()
    try:
        browser = await pw.chromium.launch(
            headless=cfg.headless,
            args=list(cfg.launch_args),
        )
        width, height = cfg.viewport
        context = await browser.new_context(
            viewport={"width": width, "height": height},
            locale=cfg.locale,
        )
        page = await context.new_page()
        page.set_default_navigation_timeout(cfg.navigation_timeout * 1000)
    except Exception:
        await pw.stop()
        raise

    async def close() -> None:
        try:
            await browser.close()
        finally:
            await pw.stop()

    return BrowserHandle(page=page, close=close)


class BrowserSession:
    """Lazily-launched, serialized, self-healing browser handle."""

    def __init__(
        self,
        cfg: BrowserConfig,
        launcher: Launcher = launch_chromium,
    ) -> None:
        self.cfg = cfg
        self._launcher = launcher
        self._handle: Optional[BrowserHandle] = None
        self._init_task: Optional[asyncio.Future] = None
        self._gate = asyncio.Lock()
        self._generation = 0
        self.launches = 0

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    # ── lifecycle ───────────────────────────────────────────
    async def _start(self) -> BrowserHandle:
        log.info("Launching browser session (headless=%s)", self.cfg.headless)
        handle = await self._launcher(self.cfg)
        self._handle = handle
        self.launches += 1
        return handle

    async def _ensure_started(self) -> BrowserHandle:
        if self._handle is not None:
            return self._handle
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._start())
        task = self._init_task
        try:
            return await asyncio.shield(task)
        except Exception:
            # Let the next caller try a fresh launch
            if self._init_task is task:
                self._init_task = None
            raise

    async def _teardown(self) -> None:
        handle = self._handle
        self._handle = None
        self._init_task = None
        self._generation += 1
        if handle is None:
            return
        try:
            await handle.close()
        except Exception as exc:
            log.warning("Browser close failed: %s", exc)
        log.info("Browser session torn down")

    async def close(self) -> None:
        await self._teardown()

    # ── serialized operations ───────────────────────────────
    async def run(
        self,
        op: Callable[[Any], Awaitable[T]],
        default: T,
        label: str = "browser op",
    ) -> T:
        """
        Run ``op(page)`` with exclusive use of the page.

        Raises whatever ``op`` raised after resetting the session.
        """
        generation = self._generation
        await self._ensure_started()

        async with self._gate:
            if generation != self._generation or self._handle is None:
                log.info("Browser was reset while '%s' waited — skipping turn", label)
                return default
            try:
                return await op(self._handle.page)
            except Exception as exc:
                log.error("'%s' failed, resetting browser: %s", label, exc)
                await self._teardown()
                raise

    async def pause(self) -> None:
        """Short random wait between page interactions."""
        lo, hi = self.cfg.human_pause
        if hi <= 0:
            return
        await asyncio.sleep(random.uniform(lo, hi))


class BrowserSource(ImageSource):
    """An image source that drives the shared ``BrowserSession``."""

    def __init__(
        self,
        cfg: SearchConfig,
        session: BrowserSession,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        super().__init__(cfg)
        self.session = session
        self._sleep = sleep
        self._page_policy = RetryPolicy(
            max_attempts=cfg.page_op_retries,
            initial_delay=cfg.page_op_initial_delay,
        )

    @property
    def timeout_ms(self) -> float:
        return self.cfg.search_timeout * 1000

    async def _page_op(self, label: str, func: Callable[[], Awaitable[T]]) -> T:
        """One page interaction with its own retry budget."""
        return await retry_call(
            func, self._page_policy, sleep=self._sleep, label=f"{self.name}: {label}",
        )
