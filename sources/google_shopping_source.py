"""Google Shopping result thumbnails, driven through the shared browser."""

from __future__ import annotations

import urllib.parse
from typing import List

from sources.base import ImageResult
from sources.browser import BrowserSource
from utils.log_config import get_logger

log = get_logger(__name__)

_COLLECT_SRCS = "els => els.map(e => e.src)"


class GoogleShoppingSource(BrowserSource):
    name = "google_shopping"

    def search_url(self, query: str) -> str:
        q = urllib.parse.quote_plus(query)
        return f"{self.cfg.shopping_url}?tbm=shop&hl=en&q={q}"

    async def search(self, query: str, max_results: int) -> List[ImageResult]:
        url = self.search_url(query)
        selector = self.cfg.shopping_selector
        log.debug("Google Shopping ← %s", query)

        async def scrape(page) -> List[ImageResult]:
            try:
                await self._page_op(
                    "navigate", lambda: page.goto(url, timeout=self.timeout_ms),
                )
                await self.session.pause()
                await self._page_op(
                    "wait for results",
                    lambda: page.wait_for_selector(selector, timeout=self.timeout_ms),
                )
                await self.session.pause()
                srcs = await page.eval_on_selector_all(f"{selector} img", _COLLECT_SRCS)
            except Exception:
                await _log_page_excerpt(page)
                raise
            return [
                ImageResult(url=src, source=self.name)
                for src in srcs
                if isinstance(src, str) and src.startswith("https")
            ]

        results = await self.session.run(
            scrape, default=[], label=f"google_shopping '{query}'",
        )
        return results[:max_results]


async def _log_page_excerpt(page, limit: int = 5000) -> None:
    try:
        html = await page.content()
    except Exception as exc:
        log.debug("Could not read page content after failure: %s", exc)
        return
    log.debug("Page content on error (first %d chars): %s", limit, html[:limit])
