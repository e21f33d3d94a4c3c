"""
Centralised logging setup.
"""

from __future__ import annotations

import logging
import sys
import warnings
from pathlib import Path
from typing import Optional

_CONFIGURED = False

# Third-party loggers that drown out pipeline output
NOISY_LOGGERS = [
    # Network
    "urllib3", "urllib3.connectionpool", "requests", "httpx", "httpcore",
    "h11", "hpack",
    # Image
    "PIL", "PIL.Image", "PIL.PngImagePlugin", "PIL.JpegImagePlugin",
    "PIL.TiffImagePlugin",
    # Browser automation
    "playwright", "asyncio",
    # Vision model
    "google", "google.auth", "google.api_core", "grpc", "absl",
    # Search
    "duckduckgo_search", "duckduckgo_search.DDGS", "primp",
    # Server
    "uvicorn.access", "multipart",
    # Other
    "concurrent", "chardet", "charset_normalizer", "filelock",
]


def setup_root(log_file: Path, verbose: bool = False) -> None:
    """Configure logging once at startup."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(asctime)s │ %(levelname)-7s │ %(name)-22s │ %(message)s"
    datefmt = "%H:%M:%S"

    log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt=datefmt,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(str(log_file), encoding="utf-8"),
        ],
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # Child loggers created before setup keep their own level
    for prefix in ("httpcore.", "httpx.", "playwright.", "google."):
        for logger_name in list(logging.Logger.manager.loggerDict.keys()):
            if logger_name.startswith(prefix):
                logging.getLogger(logger_name).setLevel(logging.WARNING)

    warnings.filterwarnings("ignore", message=".*duckduckgo_search.*")
    warnings.filterwarnings("ignore", message=".*Palette images.*")

    _CONFIGURED = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name or "shoeimg")
