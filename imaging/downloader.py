"""Fetch candidate image bytes, retrying transient network faults."""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Executor
from typing import Optional

import requests

from config.settings import DownloadConfig, browser_headers
from utils.exceptions import TransientNetworkError
from utils.log_config import get_logger
from utils.retry import RetryPolicy, Sleeper, retry_call

log = get_logger(__name__)


class ImageDownloader:
    """Thread-safe: each worker thread gets its own ``requests.Session``."""

    def __init__(
        self,
        cfg: DownloadConfig,
        executor: Optional[Executor] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.cfg = cfg
        self.executor = executor
        self.policy = RetryPolicy(
            max_attempts=cfg.max_retries,
            initial_delay=cfg.initial_delay,
        )
        self._sleep = sleep
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        s = getattr(self._local, "session", None)
        if s is None:
            s = requests.Session()
            s.headers.update(browser_headers(self.cfg.user_agent))
            self._local.session = s
        return s

    # ── public ──────────────────────────────────────────────

    async def download(self, url: str) -> bytes:
        """
        Raw bytes of *url*.  Raises ``TransientNetworkError`` once every
        attempt has failed.
        """
        loop = asyncio.get_running_loop()
        return await retry_call(
            lambda: loop.run_in_executor(self.executor, self.fetch, url),
            self.policy,
            retry_on=(TransientNetworkError,),
            sleep=self._sleep,
            label=f"download {url[:80]}",
        )

    # ── internals ───────────────────────────────────────────

    def fetch(self, url: str) -> bytes:
        try:
            resp = self.session.get(url, timeout=self.cfg.timeout)
            data = resp.content
        except requests.RequestException as exc:
            raise TransientNetworkError(f"{type(exc).__name__}: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            raise TransientNetworkError(f"HTTP {resp.status_code}", status=resp.status_code)
        if not data:
            raise TransientNetworkError("empty response body", status=resp.status_code)

        log.debug("Fetched %d KB from %s", len(data) // 1024, url[:80])
        return data
