"""Shared test fixtures."""

import shutil
import tempfile
from io import BytesIO
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from config.settings import AppConfig, BrowserConfig, PathConfig


@pytest.fixture
def tmp_dir():
    d = Path(tempfile.mkdtemp())
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def test_config(tmp_dir):
    images = tmp_dir / "public" / "images"
    paths = PathConfig(
        root=tmp_dir,
        images_dir=images,
        index_file=images / "index.json",
        log_file=tmp_dir / "test.log",
    )
    cfg = AppConfig(paths=paths, browser=BrowserConfig(human_pause=(0.0, 0.0)))
    cfg.paths.ensure()
    return cfg


class SleepRecorder:
    """Stands in for ``asyncio.sleep``; remembers every delay."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def sleeper():
    return SleepRecorder()


def _encode(arr, fmt="PNG"):
    buf = BytesIO()
    Image.fromarray(arr).save(buf, fmt)
    return buf.getvalue()


@pytest.fixture
def make_image():
    """``make_image(w, h, colour=(255,255,255), fmt="PNG") -> bytes``"""
    def _make(width, height, colour=(255, 255, 255), fmt="PNG"):
        arr = np.full((height, width, 3), colour, dtype=np.uint8)
        return _encode(arr, fmt)
    return _make


@pytest.fixture
def shoe_bytes():
    """Dark shoe-ish blob in the middle of a clean white 200x120 canvas."""
    arr = np.full((120, 200, 3), 255, dtype=np.uint8)
    arr[40:90, 30:170] = (40, 40, 60)
    return _encode(arr)


@pytest.fixture
def black_bytes():
    return _encode(np.zeros((120, 200, 3), dtype=np.uint8))
