"""Small image utilities shared by the validators and the normalizer."""

from __future__ import annotations

from io import BytesIO

from PIL import Image, UnidentifiedImageError

from utils.log_config import get_logger

log = get_logger(__name__)

WHITE = (255, 255, 255)

DecodeErrors = (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError)


def open_image(data: bytes) -> Image.Image:
    """Decode fully so the buffer can be released."""
    img = Image.open(BytesIO(data))
    img.load()
    return img


def flatten_on_white(img: Image.Image) -> Image.Image:
    """RGB copy with any transparency composited onto white."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        canvas = Image.new("RGB", rgba.size, WHITE)
        canvas.paste(rgba, mask=rgba.getchannel("A"))
        return canvas
    return img.convert("RGB")


def detect_mime(data: bytes, default: str = "image/jpeg") -> str:
    """MIME type from the image header, without a full decode."""
    try:
        with Image.open(BytesIO(data)) as img:
            return Image.MIME.get(img.format or "", default)
    except DecodeErrors:
        return default
