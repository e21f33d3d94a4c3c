"""
All configuration — flags, knobs, feature toggles.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

from utils.exceptions import ConfigurationError

ROOT_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("SHOE_IMAGE_DATA_DIR", ROOT_DIR / "data"))


VERBOSE_LOGGING               = os.getenv("VERBOSE_LOGGING", "").lower() in ("1", "true", "yes")
SAVE_INTERMEDIATE_IMAGES      = True
BYPASS_SEMANTIC_ON_FAILURE    = False
HEADLESS_BROWSER              = True

KNOWN_SOURCES: Tuple[str, ...] = ("bing", "google_shopping", "duckduckgo")


@dataclass(frozen=True)
class PathConfig:
    root:        Path = DATA_DIR
    images_dir:  Path = DATA_DIR / "public" / "images"
    index_file:  Path = DATA_DIR / "public" / "images" / "index.json"
    log_file:    Path = DATA_DIR / "logs" / "shoe_image.log"

    def ensure(self) -> None:
        for d in (self.images_dir, self.index_file.parent, self.log_file.parent):
            d.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class SearchConfig:
    priority:              List[str] = field(default_factory=lambda: [
        "bing", "duckduckgo",
    ])
    query_suffix:          str   = " shoe white background"
    max_candidates:        int   = 20
    search_timeout:        float = 20.0
    page_op_retries:       int   = 3
    page_op_initial_delay: float = 1.0

    bing_url:              str   = "https://www.bing.com/images/search"
    bing_selector:         str   = "a.iusc"
    shopping_url:          str   = "https://www.google.com/search"
    shopping_selector:     str   = ".sh-dgr__content"


@dataclass(frozen=True)
class BrowserConfig:
    headless:            bool  = HEADLESS_BROWSER
    navigation_timeout:  float = 30.0
    viewport:            Tuple[int, int] = (1280, 800)
    locale:              str   = "en-US"
    human_pause:         Tuple[float, float] = (0.2, 0.6)
    launch_args:         Tuple[str, ...] = (
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-blink-features=AutomationControlled",
        "--disable-infobars",
        "--lang=en-US,en",
        "--window-size=1280,800",
    )


@dataclass(frozen=True)
class DownloadConfig:
    max_retries:    int   = 3
    initial_delay:  float = 1.0
    timeout:        float = 10.0
    user_agent:     str   = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )


@dataclass(frozen=True)
class SemanticConfig:
    model_name:         str   = "gemini-1.5-flash"
    api_key:            str   = field(default_factory=lambda: (
        os.getenv("GOOGLE_API_KEY")
        or os.getenv("GOOGLE_GENERATIVE_AI_API_KEY")
        or ""
    ))
    timeout:            float = 15.0
    max_retries:        int   = 2
    initial_delay:      float = 1.0
    temperature:        float = 0.2
    max_keywords:       int   = 5
    bypass_on_failure:  bool  = BYPASS_SEMANTIC_ON_FAILURE
    store_name:         str   = "BareTread"


@dataclass(frozen=True)
class StructuralConfig:
    border_px:          int   = 5
    border_divisor:     int   = 10
    white_threshold:    int   = 240
    min_white_ratio:    float = 0.95


@dataclass(frozen=True)
class OutputConfig:
    jpeg_quality:       int   = 92
    artist:             str   = "BareTread"
    copyright:          str   = "BareTread.com"
    portrait_ratio:     float = 1.2
    max_tilt_degrees:   float = 1.0
    brightness_range:   Tuple[float, float] = (0.95, 1.05)


@dataclass(frozen=True)
class PipelineConfig:
    max_workers:        int   = 4
    save_intermediate:  bool  = SAVE_INTERMEDIATE_IMAGES


@dataclass(frozen=True)
class ServerConfig:
    host:           str = os.getenv("HOST", "0.0.0.0")
    port:           int = int(os.getenv("PORT", "3000"))
    images_prefix:  str = "/images"


@dataclass
class AppConfig:
    paths:     PathConfig       = field(default_factory=PathConfig)
    search:    SearchConfig     = field(default_factory=SearchConfig)
    browser:   BrowserConfig    = field(default_factory=BrowserConfig)
    download:  DownloadConfig   = field(default_factory=DownloadConfig)
    semantic:  SemanticConfig   = field(default_factory=SemanticConfig)
    structural: StructuralConfig = field(default_factory=StructuralConfig)
    output:    OutputConfig     = field(default_factory=OutputConfig)
    pipeline:  PipelineConfig   = field(default_factory=PipelineConfig)
    server:    ServerConfig     = field(default_factory=ServerConfig)

    verbose:   bool             = VERBOSE_LOGGING

    def validate(self) -> None:
        if not self.search.priority:
            raise ConfigurationError("search.priority must name at least one source")
        for name in self.search.priority:
            if name not in KNOWN_SOURCES:
                raise ConfigurationError(f"Unknown source: {name}")
        if self.pipeline.max_workers < 1:
            raise ConfigurationError("max_workers must be >= 1")
        if self.download.max_retries < 1:
            raise ConfigurationError("download.max_retries must be >= 1")
        if self.semantic.max_retries < 1:
            raise ConfigurationError("semantic.max_retries must be >= 1")
        if self.search.page_op_retries < 1:
            raise ConfigurationError("search.page_op_retries must be >= 1")


cfg = AppConfig()


def browser_headers(user_agent: str) -> Dict[str, str]:
    """Headers for image downloads."""
    return {
        "User-Agent": user_agent,
        "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "DNT": "1",
        "Connection": "keep-alive",
    }
