"""
File-backed image cache.

Published JPEGs live in the images directory; ``index.json`` maps the
normalized query key to the published filename.  Intermediate artifacts
share the directory but are never indexed.
"""

from __future__ import annotations

import json
import os
import re
import threading
from pathlib import Path
from typing import Dict, Optional

from imaging.verifier import Verdict
from utils.log_config import get_logger
from utils.text_cleaner import normalize_key, slugify

log = get_logger(__name__)

_STAGE_RE = re.compile(r"-[A-Z0-9]+(?:-[A-Z0-9]+)*\.jpg$")


class ImageCache:
    """
    Thread-safe.  The index is rewritten in full (temp file + atomic
    replace) on every ``store`` before it returns.
    """

    def __init__(self, images_dir: Path, index_file: Optional[Path] = None) -> None:
        self.images_dir = images_dir
        self.index_file = index_file or images_dir / "index.json"
        self._lock = threading.Lock()
        self._index: Dict[str, str] = {}
        self.images_dir.mkdir(parents=True, exist_ok=True)
        self._load_index()

    # ── index persistence ───────────────────────────────────

    def _load_index(self) -> None:
        if not self.index_file.exists():
            return
        try:
            data = json.loads(self.index_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("Cache index unreadable, starting empty: %s", exc)
            return
        if not isinstance(data, dict):
            log.warning("Cache index is not an object, starting empty")
            return
        self._index = {str(k): str(v) for k, v in data.items()}
        log.debug("Cache index: %d entries", len(self._index))

    def _save_index(self) -> None:
        tmp = self.index_file.with_name(self.index_file.name + ".tmp")
        tmp.write_text(
            json.dumps(self._index, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        os.replace(tmp, self.index_file)

    # ── public ──────────────────────────────────────────────

    def lookup(self, model: str) -> Optional[Path]:
        key = normalize_key(model)
        with self._lock:
            filename = self._index.get(key)
        if filename is None:
            return None
        path = self.images_dir / filename
        if not path.is_file():
            log.debug("Cache entry '%s' points at missing %s", key, filename)
            return None
        return path

    def store(self, model: str, verdict: Verdict, data: bytes) -> Path:
        key = normalize_key(model)
        filename = slugify(f"{verdict.brand} {verdict.canonical_model} side view") + ".jpg"
        path = self.images_dir / filename
        with self._lock:
            path.write_bytes(data)
            self._index[key] = filename
            self._save_index()
        log.info("Cached '%s' → %s (%d KB)", key, filename, len(data) // 1024)
        return path

    def store_intermediate(self, model: str, stage: str, data: bytes) -> Optional[Path]:
        """Best effort.  Failures are logged, never raised."""
        tag = re.sub(r"[^A-Z0-9-]+", "", stage.upper())
        path = self.images_dir / f"{normalize_key(model)}-{tag}.jpg"
        try:
            path.write_bytes(data)
        except OSError as exc:
            log.warning("Could not save %s artifact: %s", tag, exc)
            return None
        return path

    @staticmethod
    def url_for(path: Path, prefix: str = "/images") -> str:
        return f"{prefix.rstrip('/')}/{path.name}"

    # ── operator actions ────────────────────────────────────

    def stats(self) -> Dict[str, int]:
        with self._lock:
            names = list(self._index.values())
        live = [self.images_dir / n for n in names if (self.images_dir / n).is_file()]
        return {
            "entries": len(names),
            "live": len(live),
            "total_mb": round(sum(p.stat().st_size for p in live) / (1024 * 1024), 2),
        }

    def clear(self) -> int:
        """Drop every index entry and the files they point at."""
        with self._lock:
            names = set(self._index.values())
            self._index.clear()
            self._save_index()
        removed = 0
        for name in names:
            path = self.images_dir / name
            if path.is_file():
                path.unlink()
                removed += 1
        log.info("Cache cleared (%d files)", removed)
        return removed

    def clear_intermediate(self) -> int:
        """Delete unindexed stage artifacts (``{key}-{STAGE}.jpg``)."""
        with self._lock:
            indexed = set(self._index.values())
        removed = 0
        for path in self.images_dir.glob("*.jpg"):
            if path.name in indexed or not _STAGE_RE.search(path.name):
                continue
            path.unlink()
            removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._index)
