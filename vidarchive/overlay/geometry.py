from dataclasses import dataclass
from typing import Optional, Sequence

from ..utils.validation import is_valid_box

DEFAULT_LABEL_HEIGHT = 18.0


@dataclass(frozen=True)
class OverlayBox:
    """A detection rectangle in display coordinates plus where its label goes."""

    x: float
    y: float
    width: float
    height: float
    label: str
    label_x: float
    label_y: float

    def as_rect(self):
        return [self.x, self.y, self.width, self.height]


def format_label(class_name: Optional[str], confidence: Optional[float]) -> str:
    """``"person 87%"``; either part is left out when unknown."""
    parts = []
    if class_name:
        parts.append(class_name)
    if confidence is not None:
        parts.append(f"{round(confidence * 100)}%")
    return " ".join(parts)


def compute_overlay(
    box: Sequence[float],
    natural_width: float,
    natural_height: float,
    display_width: float,
    display_height: float,
    class_name: Optional[str] = None,
    confidence: Optional[float] = None,
    label_height: float = DEFAULT_LABEL_HEIGHT,
    clamp_label: bool = False,
) -> Optional[OverlayBox]:
    """
    Map a bounding box from source pixel space onto a displayed image.

    Each axis is scaled independently (``display / natural``), so non-uniform
    scaling is supported. Returns None when nothing should be drawn: a box
    that is not exactly four numbers, or natural dimensions that are not
    known yet (image not loaded).

    Args:
        box: ``[x1, y1, x2, y2]`` top-left/bottom-right corners in source pixels
        natural_width: Width of the source image
        natural_height: Height of the source image
        display_width: Rendered width of the image
        display_height: Rendered height of the image
        class_name: Detected class, used for the label
        confidence: Detection confidence in [0, 1], used for the label
        label_height: Height reserved for the label above the box
        clamp_label: Keep the label inside the image when the box touches the top edge

    Returns:
        OverlayBox in display coordinates, or None
    """
    if not is_valid_box(box):
        return None
    if not natural_width or not natural_height or natural_width <= 0 or natural_height <= 0:
        return None

    scale_x = display_width / natural_width
    scale_y = display_height / natural_height
    x1, y1, x2, y2 = box

    x = x1 * scale_x
    y = y1 * scale_y
    width = (x2 - x1) * scale_x
    height = (y2 - y1) * scale_y

    label_y = y - label_height
    if clamp_label and label_y < 0:
        label_y = y

    return OverlayBox(
        x=x,
        y=y,
        width=width,
        height=height,
        label=format_label(class_name, confidence),
        label_x=x,
        label_y=label_y,
    )


def overlay_for_result(result, natural_width, natural_height, display_width, display_height, **kwargs) -> Optional[OverlayBox]:
    """compute_overlay for an object SearchResult; frame results carry no box and yield None."""
    meta = result.metadata
    if meta.bbox is None:
        return None
    return compute_overlay(
        meta.bbox,
        natural_width,
        natural_height,
        display_width,
        display_height,
        class_name=meta.class_name,
        confidence=meta.confidence,
        **kwargs,
    )
