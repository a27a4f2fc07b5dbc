import io
import logging
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from PIL import Image, ImageFilter

logger = logging.getLogger(__name__)

PREVIEW_SIZE = (32, 32)
BLUR_RADIUS = 8

_FORMATS = {
    ".jpg": ("JPEG", {"quality": 60}),
    ".jpeg": ("JPEG", {"quality": 60}),
    ".png": ("PNG", {"optimize": True}),
    ".webp": ("WEBP", {"quality": 50}),
    ".gif": ("GIF", {}),
    ".bmp": ("BMP", {}),
}


def _blur(data: bytes, extension: str) -> bytes:
    fmt, options = _FORMATS[extension]
    with Image.open(io.BytesIO(data)) as img:
        img.thumbnail(PREVIEW_SIZE)
        if fmt == "JPEG" and img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        elif img.mode == "P":
            img = img.convert("RGBA")
        preview = img.filter(ImageFilter.GaussianBlur(BLUR_RADIUS))
        out = io.BytesIO()
        preview.save(out, format=fmt, **options)
        return out.getvalue()


async def make_blur_preview(data: bytes, extension: str) -> Optional[bytes]:
    """Small blurred placeholder in the source format, or None if it can't be built."""
    extension = extension.lower()
    if extension not in _FORMATS:
        return None
    try:
        return await run_in_threadpool(_blur, data, extension)
    except Exception:
        logger.warning("Could not build blurred preview", exc_info=True)
        return None
