"""
Tests for ArchiveClient request construction and error normalization.
Requests are served by httpx.MockTransport so the exact wire shape can be inspected.
"""

import httpx
import pytest

from vidarchive.exceptions import (
    ArchiveTimeoutException,
    RequestException,
    ResourceNotFoundException,
    ValidationException,
)
from vidarchive.models import JobStatus, ResultType, SearchRequest
from .conftest import make_result


def ok(payload, status=200):
    return lambda request: httpx.Response(status, json=payload)


async def test_text_search_request_shape_without_filter(mock_client):
    client, recorder = mock_client(ok({"results": [make_result(1), make_result(2)]}))
    request = SearchRequest(query_text="red car", search_frames=True, search_objects=False, max_results=20)

    results = await client.search_by_text(request)

    assert recorder.last.method == "POST"
    assert recorder.last.url.path == "/api/search/text"
    assert recorder.last_json() == {
        "query": "red car",
        "search_frames": True,
        "search_objects": False,
        "max_results": 20,
        "video_names": None,
    }
    assert [r.metadata.frame_index for r in results] == [60, 120]


async def test_text_search_sends_filter_when_selected(mock_client):
    client, recorder = mock_client(ok({"results": []}))
    request = SearchRequest(query_text="dog", video_names={"b_cam", "a_cam"})

    await client.search_by_text(request)

    assert recorder.last_json()["video_names"] == ["a_cam", "b_cam"]


async def test_empty_filter_set_is_sent_as_null(mock_client):
    client, recorder = mock_client(ok({"results": []}))

    await client.search_by_text(SearchRequest(query_text="dog", video_names=set()))

    assert recorder.last_json()["video_names"] is None


async def test_image_search_is_multipart_and_omits_empty_filter(mock_client):
    client, recorder = mock_client(ok({"results": [make_result(1, result_type="object", bbox=[1, 2, 3, 4])]}))
    request = SearchRequest(
        query_image=b"\x89PNG fake",
        image_filename="query.png",
        image_content_type="image/png",
        search_objects=False,
        max_results=7,
    )

    results = await client.search_by_image(request)

    body = recorder.last.content
    assert recorder.last.url.path == "/api/search/image"
    assert recorder.last.headers["content-type"].startswith("multipart/form-data")
    assert b'name="image"; filename="query.png"' in body
    assert b"\x89PNG fake" in body
    assert b'name="search_objects"\r\n\r\nfalse' in body
    assert b'name="search_frames"\r\n\r\ntrue' in body
    assert b'name="max_results"\r\n\r\n7' in body
    assert b'name="video_names"' not in body
    assert results[0].result_type == ResultType.OBJECT
    assert results[0].metadata.bbox == [1, 2, 3, 4]


async def test_image_search_joins_filter_with_commas(mock_client):
    client, recorder = mock_client(ok({"results": []}))
    request = SearchRequest(query_image=b"img", video_names={"beta", "alpha"})

    await client.search_by_image(request)

    assert b'name="video_names"\r\n\r\nalpha,beta' in recorder.last.content


async def test_validation_detail_list_is_flattened(mock_client):
    detail = [
        {"loc": ["body", "query"], "msg": "too short", "type": "string_too_short"},
        {"loc": ["body", "max_results"], "msg": "must be positive"},
    ]
    client, _ = mock_client(ok({"detail": detail}, status=422))

    with pytest.raises(RequestException) as exc_info:
        await client.search_by_text(SearchRequest(query_text="a"))

    assert exc_info.value.status == 422
    assert exc_info.value.message == "query: too short; max_results: must be positive"
    assert exc_info.value.detail == detail


async def test_string_detail_is_kept(mock_client):
    client, _ = mock_client(ok({"detail": "Embedding service unavailable"}, status=503))

    with pytest.raises(RequestException) as exc_info:
        await client.search_by_text(SearchRequest(query_text="cat"))

    assert str(exc_info.value) == "Embedding service unavailable"
    assert exc_info.value.status == 503


async def test_non_json_error_body_falls_back_to_text(mock_client):
    client, _ = mock_client(lambda request: httpx.Response(502, text=""))

    with pytest.raises(RequestException) as exc_info:
        await client.list_video_names()

    assert exc_info.value.message == "Request failed with status 502"


async def test_timeout_surfaces_as_timeout_error(mock_client):
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    client, _ = mock_client(handler, timeout=0.5)

    with pytest.raises(TimeoutError) as exc_info:
        await client.search_by_text(SearchRequest(query_text="slow"))

    assert isinstance(exc_info.value, ArchiveTimeoutException)


async def test_connection_error_is_request_error_with_status_zero(mock_client):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = mock_client(handler)

    with pytest.raises(RequestException) as exc_info:
        await client.health()

    assert exc_info.value.status == 0


async def test_status_of_unknown_video_raises_not_found(mock_client):
    client, recorder = mock_client(ok({"detail": "Video not found"}, status=404))

    with pytest.raises(ResourceNotFoundException):
        await client.get_job_status("my video")

    assert recorder.last.url.raw_path == b"/api/videos/status/my%20video"


async def test_status_is_parsed_into_ingestion_job(mock_client):
    payload = {
        "video_name": "holiday",
        "status": "detecting_objects",
        "progress": 55.5,
        "steps_completed": ["downloading", "extracting_frames"],
        "frame_count": 80,
        "object_count": 0,
        "created_at": "2024-05-01T10:00:00Z",
    }
    client, _ = mock_client(ok(payload))

    job = await client.get_job_status("holiday")

    assert job.status == JobStatus.DETECTING_OBJECTS
    assert job.progress == 55.5
    assert job.steps_completed == ["downloading", "extracting_frames"]
    assert not job.is_terminal


async def test_list_video_names_passes_status_filter(mock_client):
    client, recorder = mock_client(ok({"video_names": ["a", "b"]}))

    names = await client.list_video_names(status="completed")

    assert names == ["a", "b"]
    assert recorder.last.url.params["status"] == "completed"


async def test_list_videos(mock_client):
    client, _ = mock_client(ok({"videos": [{"video_name": "a", "status": "completed", "fps": 1}]}))

    videos = await client.list_videos()

    assert videos[0].video_name == "a"
    assert videos[0].status == "completed"


async def test_upload_returns_normalized_name(mock_client):
    client, recorder = mock_client(ok({"message": "uploaded"}))

    name = await client.submit_upload(b"video-bytes", "My Trip (2024).MP4", "video/mp4")

    assert name == "my_trip_2024"
    assert b'name="file"; filename="My Trip (2024).MP4"' in recorder.last.content


async def test_url_job_body(mock_client):
    client, recorder = mock_client(ok({"message": "processing"}))

    name = await client.submit_url_job("  My Holiday! ", "youtube", "https://youtube.com/watch?v=xyz", fps=2)

    assert name == "my_holiday"
    assert recorder.last.url.path == "/api/videos/process"
    assert recorder.last_json() == {
        "video_name": "my_holiday",
        "source_type": "youtube",
        "source_url": "https://youtube.com/watch?v=xyz",
        "fps": 2,
        "force": False,
    }


@pytest.mark.parametrize(
    "name,source_type,url,fps",
    [
        ("", "youtube", "https://x", 1),
        ("clip", "youtube", "   ", 1),
        ("clip", "vimeo", "https://x", 1),
        ("clip", "drive", "https://x", 31),
        ("!!!", "drive", "https://x", 1),
    ],
)
async def test_url_job_validation_sends_nothing(mock_client, name, source_type, url, fps):
    client, recorder = mock_client(ok({"message": "processing"}))

    with pytest.raises(ValidationException):
        await client.submit_url_job(name, source_type, url, fps)

    assert recorder.requests == []


async def test_delete_rejected_by_backend(mock_client):
    client, recorder = mock_client(ok({"detail": "Video is still being processed"}, status=400))

    with pytest.raises(RequestException) as exc_info:
        await client.delete_video("clip")

    assert recorder.last.method == "DELETE"
    assert exc_info.value.message == "Video is still being processed"


async def test_stream_url_with_offset(mock_client):
    client, _ = mock_client(ok({}))

    url = client.stream_url("my clip", start_seconds=12.5)

    assert url.startswith("http://testserver/api/videos/stream/my%20clip?t=")
    assert url.endswith("#t=12.5")
    assert "#t=" not in client.stream_url("clip")


async def test_health_and_storage_info_against_backend(backend_client, fake_state):
    fake_state.add_job("clip", ["completed"])

    assert (await backend_client.health())["status"] == "healthy"
    assert (await backend_client.storage_info())["videos"] == ["clip"]
