"""
Turns an accepted image into the published JPEG.

Steps:
    1. Orientation fix (requested by the verdict, or tall portrait shots)
    2. Exactly one small random perturbation so published files are not
       byte-identical to the source
    3. Fresh JPEG with our own EXIF block (input metadata is dropped)
"""

from __future__ import annotations

import random
from enum import Enum
from io import BytesIO
from typing import Optional, Tuple

from PIL import ExifTags, Image, ImageEnhance, ImageOps

from config.settings import OutputConfig
from imaging.helpers import WHITE, DecodeErrors, flatten_on_white, open_image
from imaging.verifier import Verdict
from utils.exceptions import ProcessingError
from utils.log_config import get_logger

log = get_logger(__name__)

_USER_COMMENT_PREFIX = b"ASCII\x00\x00\x00"


class Perturbation(str, Enum):
    MIRROR     = "mirror"
    TILT       = "tilt"
    BRIGHTNESS = "brightness"


class ImageNormalizer:

    def __init__(self, cfg: OutputConfig, rng: Optional[random.Random] = None) -> None:
        self.cfg = cfg
        self.rng = rng or random.Random()

    # ── orientation ─────────────────────────────────────────

    def needs_rotation(self, width: int, height: int, requested: bool) -> bool:
        return requested or height > width * self.cfg.portrait_ratio

    def correct_orientation(self, img: Image.Image, requested: bool) -> Image.Image:
        """Rotate 90° clockwise when asked to, or when the shot is portrait."""
        if not self.needs_rotation(img.width, img.height, requested):
            return img
        log.debug("Rotating %dx%d 90° clockwise", img.width, img.height)
        return img.rotate(-90, expand=True, fillcolor=WHITE)

    # ── perturbation ────────────────────────────────────────

    def perturb(self, img: Image.Image) -> Tuple[Image.Image, str]:
        choice = self.rng.choice(list(Perturbation))

        if choice is Perturbation.MIRROR:
            return ImageOps.mirror(img), "mirror"

        if choice is Perturbation.TILT:
            limit = self.cfg.max_tilt_degrees
            angle = self.rng.uniform(-limit, limit)
            tilted = img.rotate(
                -angle,
                resample=Image.Resampling.BICUBIC,
                expand=True,
                fillcolor=WHITE,
            )
            return tilted, f"tilt {angle:+.2f}°"

        lo, hi = self.cfg.brightness_range
        factor = self.rng.uniform(lo, hi)
        return ImageEnhance.Brightness(img).enhance(factor), f"brightness ×{factor:.3f}"

    # ── metadata ────────────────────────────────────────────

    def build_exif(self, verdict: Verdict) -> Image.Exif:
        description = f"Official product photo of {verdict.brand} {verdict.canonical_model}"
        comment = ", ".join(verdict.keywords) or f"{verdict.brand}, {verdict.canonical_model}"

        exif = Image.Exif()
        exif[ExifTags.Base.Artist] = self.cfg.artist
        exif[ExifTags.Base.Copyright] = self.cfg.copyright
        exif[ExifTags.Base.ImageDescription] = description
        exif[ExifTags.IFD.Exif] = {
            ExifTags.Base.UserComment: _USER_COMMENT_PREFIX
            + comment.encode("ascii", "replace"),
        }
        return exif

    # ── public ──────────────────────────────────────────────

    def normalize(self, data: bytes, verdict: Verdict) -> bytes:
        try:
            img = flatten_on_white(open_image(data))
        except DecodeErrors as exc:
            raise ProcessingError(f"Cannot decode accepted image: {exc}") from exc

        img = self.correct_orientation(img, verdict.rotate)
        img, applied = self.perturb(img)

        buf = BytesIO()
        try:
            img.convert("RGB").save(
                buf,
                format="JPEG",
                quality=self.cfg.jpeg_quality,
                exif=self.build_exif(verdict).tobytes(),
            )
        except (OSError, ValueError) as exc:
            raise ProcessingError(f"JPEG encode failed: {exc}") from exc

        log.debug("Normalized %dx%d (%s)", img.width, img.height, applied)
        return buf.getvalue()
