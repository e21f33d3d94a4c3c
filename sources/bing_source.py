"""Bing Images, driven through the shared browser."""

from __future__ import annotations

import json
import re
import urllib.parse
from typing import List, Set

from bs4 import BeautifulSoup

from sources.base import ImageResult
from sources.browser import BrowserSource
from utils.log_config import get_logger

log = get_logger(__name__)

_MURL = re.compile(r'"murl":"(.*?)"')


def parse_bing_html(html: str, source: str = "bing") -> List[ImageResult]:
    """Full-resolution image URLs from the ``m`` JSON on each result tile."""
    soup = BeautifulSoup(html, "html.parser")

    seen: Set[str] = set()
    results: List[ImageResult] = []

    for anchor in soup.select("a.iusc"):
        m_json = anchor.get("m", "")
        if not m_json:
            continue
        try:
            img_url = json.loads(m_json).get("murl", "")
        except (ValueError, AttributeError):
            match = _MURL.search(m_json)
            img_url = match.group(1).replace("\\/", "/") if match else ""
        if img_url.startswith("http") and img_url not in seen:
            seen.add(img_url)
            results.append(
                ImageResult(
                    url=img_url,
                    source=source,
                    title=anchor.get("title", ""),
                )
            )
    return results


class BingSource(BrowserSource):
    name = "bing"

    def search_url(self, query: str) -> str:
        q = urllib.parse.quote_plus(f"{query}{self.cfg.query_suffix}")
        return f"{self.cfg.bing_url}?q={q}&qft=+filterui:imagesize-large&form=IRFLTR"

    async def search(self, query: str, max_results: int) -> List[ImageResult]:
        url = self.search_url(query)
        log.debug("Bing ← %s", query)

        async def scrape(page) -> List[ImageResult]:
            await self._page_op(
                "navigate", lambda: page.goto(url, timeout=self.timeout_ms),
            )
            await self.session.pause()
            await self._page_op(
                "wait for results",
                lambda: page.wait_for_selector(
                    self.cfg.bing_selector, timeout=self.timeout_ms,
                ),
            )
            html = await page.content()
            return parse_bing_html(html, self.name)

        results = await self.session.run(scrape, default=[], label=f"bing '{query}'")
        return results[:max_results]
