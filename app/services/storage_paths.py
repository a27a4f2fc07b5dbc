"""Object key layout and the sanitizers guarding it.

Every card asset lives under ``<repertoire>/tag<num>/`` and quiz images under
``<repertoire>/tag<num>/imagesQuizz/``.
"""
import math
import os
import re
import time
from typing import Any, Optional, Tuple

from app.core.errors import ValidationError

SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")
SEGMENT_MAX = 60
FILENAME_MAX = 200
QUIZ_IMAGES_DIR = "imagesQuizz"

BG_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp"})
QUIZ_IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png"})
FILE_EXTENSIONS = frozenset({
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".csv", ".txt", ".md", ".py",
    ".zip", ".rar", ".7z", ".ppt", ".pptx", ".jpg", ".jpeg", ".png", ".gif",
    ".svg", ".webp", ".mp4",
})


def sanitize_segment(value: Any, label: str) -> Optional[str]:
    """Trimmed segment, None when empty, ValidationError when unsafe."""
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if len(cleaned) > SEGMENT_MAX:
        raise ValidationError(f"{label} is too long.")
    if not SEGMENT_RE.match(cleaned):
        raise ValidationError(f"{label} is invalid.")
    return cleaned


def normalize_tag(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return math.trunc(number)


def is_safe_filename(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    if len(value) > FILENAME_MAX:
        return False
    return "/" not in value and "\\" not in value and ".." not in value


def extension_of(filename: Optional[str]) -> str:
    return os.path.splitext(filename or "")[1].lower()


def sanitize_base_name(raw_name: Optional[str], extension: str, default: str = "fichier") -> str:
    base = os.path.basename(raw_name or default)
    if extension and base.lower().endswith(extension):
        base = base[: -len(extension)]
    base = re.sub(r"[^A-Za-z0-9_-]", "_", base)
    base = re.sub(r"_+", "_", base).strip("_")[:SEGMENT_MAX]
    return base or default


def unique_name(raw_name: Optional[str], extension: str, default: str = "fichier") -> Tuple[str, str]:
    """Collision resistant ``base_<millis>`` stem and the full file name."""
    stem = f"{sanitize_base_name(raw_name, extension, default)}_{int(time.time() * 1000)}"
    return stem, f"{stem}{extension}"


def blur_name(filename: Optional[str]) -> Optional[str]:
    if not filename or not isinstance(filename, str):
        return None
    stem, dot, ext = filename.rpartition(".")
    if not dot:
        return f"{filename}Blur"
    return f"{stem}Blur.{ext}"


def card_prefix(repertoire: str, num: Any) -> str:
    segment = sanitize_segment(repertoire, "Directory")
    tag = normalize_tag(num)
    if segment is None:
        raise ValidationError("Directory is missing.")
    if tag is None:
        raise ValidationError("Invalid tag number.")
    return f"{segment}/tag{tag}/"


def card_object_key(repertoire: str, num: Any, filename: str, quiz_image: bool = False) -> str:
    prefix = card_prefix(repertoire, num)
    if quiz_image:
        prefix = f"{prefix}{QUIZ_IMAGES_DIR}/"
    return f"{prefix}{filename}"


def resolve_insert_index(length: int, position: Any) -> int:
    """``start`` -> 0, ``end``/None -> length, an index -> right after it."""
    if position == "start":
        return 0
    if position is None or position == "end":
        return length
    try:
        numeric = int(float(position))
    except (TypeError, ValueError):
        return length
    return max(0, min(length, numeric + 1))
