import pytest

from vidarchive.models import SearchResult
from vidarchive.search.formatting import (
    describe_result,
    format_similarity,
    format_timestamp,
    object_tags,
    playback_target,
    result_badge,
    result_title,
)
from .conftest import make_result


@pytest.mark.parametrize(
    "seconds,expected",
    [(0, "0:00"), (5.9, "0:05"), (65, "1:05"), (3600, "60:00"), (None, ""), (-1, "")],
)
def test_format_timestamp(seconds, expected):
    assert format_timestamp(seconds) == expected


@pytest.mark.parametrize("similarity,expected", [(0.876, "87.6% match"), (1.2, "100.0% match"), (-0.1, "0.0% match")])
def test_format_similarity(similarity, expected):
    assert format_similarity(similarity) == expected


def test_object_tags_keep_first_five_in_order():
    objects = [{"class_name": f"c{i}", "confidence": 0.9} for i in range(7)]
    result = SearchResult.model_validate(make_result(1, objects=objects))

    assert object_tags(result) == [f"c{i} (90%)" for i in range(5)]


def test_title_falls_back_to_path():
    result = SearchResult.model_validate({"result_type": "frame", "similarity": 0.5, "path": "frames/clip_a/"})

    assert result_title(result) == "clip_a"
    assert playback_target(result) is None


def test_describe_object_result():
    result = SearchResult.model_validate(
        make_result(3, video_name="lobby", result_type="object", class_name="person", timestamp=75.0)
    )

    line = describe_result(result, 1)

    assert result_badge(result) == "Object"
    assert line.startswith(" 1. [Object] lobby")
    assert "at 1:15" in line
    assert "object person" in line
    assert playback_target(result) == ("lobby", 75.0)
