"""Abstract base class every image source inherits from."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List

from config.settings import SearchConfig
from utils.exceptions import SourceError
from utils.log_config import get_logger

log = get_logger(__name__)


@dataclass
class ImageResult:
    """One candidate image from any source."""

    url:    str
    source: str
    title:  str = ""
    width:  int = 0
    height: int = 0


class ImageSource:
    """
    Subclass must set ``name`` and implement ``search()``.

    ``search()`` returns candidates best-first and may raise anything;
    ``find()`` is what the pipeline calls.
    """

    name: str = "base"

    def __init__(self, cfg: SearchConfig) -> None:
        self.cfg = cfg

    # ── override in subclass ────────────────────────────────
    async def search(self, query: str, max_results: int) -> List[ImageResult]:
        raise NotImplementedError

    async def close(self) -> None:
        """Release anything the source holds."""

    # ── wrapper: dedup, cap, fault wrapping ─────────────────
    async def find(self, query: str) -> List[ImageResult]:
        t0 = time.monotonic()
        try:
            raw = await self.search(query, self.cfg.max_candidates)
        except SourceError:
            raise
        except Exception as exc:
            log.warning("%s search failed: %s", self.name, exc)
            raise SourceError(self.name, str(exc) or type(exc).__name__) from exc

        seen = set()
        results: List[ImageResult] = []
        for r in raw:
            if r.url.startswith("http") and r.url not in seen:
                seen.add(r.url)
                results.append(r)

        log.info(
            "%s → %d candidate(s) in %.1fs",
            self.name, len(results), time.monotonic() - t0,
        )
        return results[: self.cfg.max_candidates]
