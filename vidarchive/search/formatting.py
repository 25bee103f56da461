import math
from typing import List, Optional

from ..models import DetectedObject, ResultType, SearchResult

MAX_OBJECT_TAGS = 5


def format_timestamp(seconds: Optional[float]) -> str:
    """Seconds as ``m:ss``; empty string when unknown."""
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        return ""
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{mins}:{secs:02d}"


def format_similarity(similarity: float) -> str:
    value = max(0.0, min(1.0, similarity))
    return f"{value * 100:.1f}% match"


def result_title(result: SearchResult) -> str:
    if result.metadata.video_name:
        return result.metadata.video_name
    if result.path:
        return result.path.rstrip("/").split("/")[-1] or "Untitled"
    return "Untitled"


def result_badge(result: SearchResult) -> str:
    return "Frame" if result.result_type == ResultType.FRAME else "Object"


def object_tags(result: SearchResult, limit: int = MAX_OBJECT_TAGS) -> List[str]:
    """First ``limit`` detections as ``"class (87%)"``, in backend order."""
    objects: List[DetectedObject] = result.metadata.objects[:limit]
    return [f"{obj.class_name} ({obj.confidence * 100:.0f}%)" for obj in objects]


def playback_target(result: SearchResult):
    """``(video_name, start_seconds)`` to play this hit from, or None without a video name."""
    if not result.metadata.video_name:
        return None
    return result.metadata.video_name, result.metadata.timestamp or 0.0


def describe_result(result: SearchResult, rank: int) -> str:
    """One line summary of a hit for text front ends."""
    parts = [f"{rank:>2}. [{result_badge(result)}] {result_title(result)}", format_similarity(result.similarity)]
    timestamp = format_timestamp(result.metadata.timestamp)
    if timestamp:
        parts.append(f"at {timestamp}")
    if result.metadata.frame_index is not None:
        parts.append(f"frame {result.metadata.frame_index}")
    if result.result_type == ResultType.OBJECT and result.metadata.class_name:
        parts.append(f"object {result.metadata.class_name}")
    tags = object_tags(result)
    if tags:
        parts.append("objects: " + ", ".join(tags))
    return " | ".join(parts)
