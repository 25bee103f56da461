import math
import os
import re
from typing import Any, Optional, Sequence
from ..exceptions import ValidationException

SOURCE_TYPES = ("upload", "youtube", "drive")
MIN_FPS = 1
MAX_FPS = 30
MIN_DISPLAY_LIMIT = 5
MAX_DISPLAY_LIMIT = 50


def normalize_video_name(name: str) -> str:
    """
    Normalize a video name the way the backend stores it.

    Spaces become underscores, characters outside ``[a-zA-Z0-9_-]`` are
    stripped, leading/trailing underscores are trimmed and the result is
    lowercased. The same rule runs server-side, so optimistic job entries
    and later status polls agree on the key.

    Args:
        name: Raw user supplied or filename derived name

    Returns:
        str: Normalized name, possibly empty
    """
    safe_name = name.replace(" ", "_")
    safe_name = re.sub(r"[^a-zA-Z0-9_-]", "", safe_name)
    safe_name = safe_name.strip("_")
    return safe_name.lower()


def video_name_from_filename(filename: str) -> str:
    """Derive the expected backend video name from an uploaded file name."""
    base = os.path.basename(filename or "")
    stem = re.sub(r"\.[^/.]+$", "", base)
    return normalize_video_name(stem)


def require_text(value: Optional[str], message: str) -> str:
    """Return the trimmed value or raise if it is blank."""
    if value is None or len(value.strip()) == 0:
        raise ValidationException(message)
    return value.strip()


def validate_source_type(source_type: str) -> str:
    if source_type not in SOURCE_TYPES:
        raise ValidationException(f"Invalid source type: {source_type}. Valid source types: {list(SOURCE_TYPES)}")
    return source_type


def validate_fps(fps: Any) -> int:
    """Coerce frames-per-second to an int in the accepted range."""
    try:
        value = int(fps)
    except (TypeError, ValueError):
        raise ValidationException(f"FPS must be an integer between {MIN_FPS} and {MAX_FPS}")
    if value < MIN_FPS or value > MAX_FPS:
        raise ValidationException(f"FPS must be between {MIN_FPS} and {MAX_FPS}, got {value}")
    return value


def clamp_display_limit(limit: int) -> int:
    return max(MIN_DISPLAY_LIMIT, min(MAX_DISPLAY_LIMIT, int(limit)))


def is_valid_box(box: Any) -> bool:
    """True when ``box`` is a sequence of exactly four finite numbers."""
    if isinstance(box, (str, bytes)) or not isinstance(box, Sequence):
        return False
    if len(box) != 4:
        return False
    for value in box:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not math.isfinite(value):
            return False
    return True
