"""DuckDuckGo Images search."""

from __future__ import annotations

import asyncio
from typing import List

from duckduckgo_search import DDGS

from sources.base import ImageResult, ImageSource
from utils.log_config import get_logger

log = get_logger(__name__)


class DuckDuckGoSource(ImageSource):
    name = "duckduckgo"

    def _search_sync(self, query: str, max_results: int) -> List[ImageResult]:
        with DDGS(timeout=int(self.cfg.search_timeout)) as ddgs:
            raw = list(
                ddgs.images(
                    keywords=f"{query}{self.cfg.query_suffix}",
                    region="wt-wt",
                    safesearch="moderate",
                    size="Large",
                    type_image="photo",
                    max_results=max_results,
                )
            )
        return [
            ImageResult(
                url=r["image"],
                source=self.name,
                title=r.get("title", ""),
                width=int(r.get("width") or 0),
                height=int(r.get("height") or 0),
            )
            for r in raw
            if r.get("image")
        ]

    async def search(self, query: str, max_results: int) -> List[ImageResult]:
        log.debug("DuckDuckGo ← %s", query)
        return await asyncio.wait_for(
            asyncio.to_thread(self._search_sync, query, max_results),
            timeout=self.cfg.search_timeout,
        )
