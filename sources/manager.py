"""
Builds the configured image sources in priority order and owns the
browser session they share.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Type

from config.settings import AppConfig
from sources.base import ImageSource
from sources.bing_source import BingSource
from sources.browser import BrowserSession, BrowserSource
from sources.duckduckgo_source import DuckDuckGoSource
from sources.google_shopping_source import GoogleShoppingSource
from utils.exceptions import ConfigurationError
from utils.log_config import get_logger

log = get_logger(__name__)

SOURCE_REGISTRY: Dict[str, Type[ImageSource]] = {
    "bing":            BingSource,
    "google_shopping": GoogleShoppingSource,
    "duckduckgo":      DuckDuckGoSource,
}


class SourceManager:
    """
    Instantiate once per process.  Browser-driven sources all share
    ``self.session``; it is only launched when one of them searches.
    """

    def __init__(
        self,
        cfg: AppConfig,
        session: Optional[BrowserSession] = None,
    ) -> None:
        self.session = session or BrowserSession(cfg.browser)
        self.sources: List[ImageSource] = []
        for name in cfg.search.priority:
            cls = SOURCE_REGISTRY.get(name)
            if cls is None:
                raise ConfigurationError(f"Unknown source: {name}")
            if issubclass(cls, BrowserSource):
                self.sources.append(cls(cfg.search, self.session))
            else:
                self.sources.append(cls(cfg.search))
        log.info("Sources: %s", " → ".join(s.name for s in self.sources))

    async def close(self) -> None:
        for source in self.sources:
            await source.close()
        await self.session.close()
