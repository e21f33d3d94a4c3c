"""
Structural check: does the image sit on a near-white backdrop?

Samples the four border strips and counts near-white pixels.  Cheap and
local, so it runs before any vision-model call.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from config.settings import StructuralConfig
from imaging.helpers import DecodeErrors, flatten_on_white, open_image
from utils.log_config import get_logger

log = get_logger(__name__)


class StructuralValidator:

    def __init__(self, cfg: StructuralConfig) -> None:
        self.cfg = cfg

    def border_thickness(self, width: int, height: int) -> int:
        c = self.cfg
        return min(c.border_px, width // c.border_divisor, height // c.border_divisor)

    def white_ratio(self, data: bytes) -> Optional[float]:
        """
        Fraction of near-white pixels across the top, bottom, left and
        right strips.  Corner pixels belong to two strips and are counted
        in both.  ``None`` if the image cannot be decoded or is too small.
        """
        try:
            img = open_image(data)
            rgb = np.asarray(flatten_on_white(img))
        except DecodeErrors as exc:
            log.debug("Structural check: undecodable image (%s)", exc)
            return None

        height, width = rgb.shape[:2]
        t = self.border_thickness(width, height)
        if t <= 0:
            log.debug("Structural check: %dx%d too small for a border", width, height)
            return None

        strips = (
            rgb[:t, :],
            rgb[height - t:, :],
            rgb[:, :t],
            rgb[:, width - t:],
        )
        white = 0
        total = 0
        for strip in strips:
            px = strip.reshape(-1, 3)
            white += int(np.all(px > self.cfg.white_threshold, axis=1).sum())
            total += px.shape[0]
        return white / total

    def is_structurally_valid(self, data: bytes) -> bool:
        ratio = self.white_ratio(data)
        if ratio is None:
            return False
        ok = ratio > self.cfg.min_white_ratio
        log.debug(
            "White border %.2f%% → %s", ratio * 100, "pass" if ok else "fail",
        )
        return ok
