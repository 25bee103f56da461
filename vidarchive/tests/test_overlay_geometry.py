import math

import pytest

from vidarchive.models import SearchResult
from vidarchive.overlay import compute_overlay, format_label, overlay_for_result
from .conftest import make_result


def test_box_is_scaled_to_display_size():
    overlay = compute_overlay([100, 100, 300, 200], 1000, 500, 500, 250)

    assert overlay.as_rect() == [50, 50, 100, 50]


def test_axes_scale_independently():
    overlay = compute_overlay([100, 100, 300, 200], 1000, 500, 250, 500)

    assert overlay.x == pytest.approx(25)
    assert overlay.y == pytest.approx(100)
    assert overlay.width == pytest.approx(50)
    assert overlay.height == pytest.approx(100)


def test_label_sits_above_box():
    overlay = compute_overlay([100, 100, 300, 200], 1000, 500, 500, 250, class_name="car", confidence=0.874)

    assert overlay.label == "car 87%"
    assert overlay.label_x == overlay.x
    assert overlay.label_y == pytest.approx(50 - 18)


def test_label_overflows_top_edge_unless_clamped():
    box = [10, 0, 50, 40]

    assert compute_overlay(box, 100, 100, 100, 100).label_y < 0
    assert compute_overlay(box, 100, 100, 100, 100, clamp_label=True).label_y == 0


@pytest.mark.parametrize(
    "box",
    [
        None,
        [],
        [1, 2, 3],
        [1, 2, 3, 4, 5],
        [1, "2", 3, 4],
        [1, 2, math.nan, 4],
        [True, 2, 3, 4],
        "1234",
    ],
)
def test_invalid_box_draws_nothing(box):
    assert compute_overlay(box, 100, 100, 100, 100) is None


@pytest.mark.parametrize("natural", [(0, 100), (100, 0), (0, 0), (None, 100)])
def test_unknown_natural_size_draws_nothing(natural):
    assert compute_overlay([1, 2, 3, 4], natural[0], natural[1], 100, 100) is None


@pytest.mark.parametrize(
    "class_name,confidence,expected",
    [("person", 0.5, "person 50%"), ("dog", None, "dog"), (None, 0.91, "91%"), (None, None, "")],
)
def test_format_label(class_name, confidence, expected):
    assert format_label(class_name, confidence) == expected


def test_overlay_for_object_result():
    result = SearchResult.model_validate(
        make_result(1, result_type="object", bbox=[0, 0, 64, 32], class_name="cat", confidence=0.5)
    )

    overlay = overlay_for_result(result, 640, 320, 320, 160)

    assert overlay.as_rect() == [0, 0, 32, 16]
    assert overlay.label == "cat 50%"


def test_frame_result_has_no_overlay():
    result = SearchResult.model_validate(make_result(1))

    assert overlay_for_result(result, 640, 320, 320, 160) is None
