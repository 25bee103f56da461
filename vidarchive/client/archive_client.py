"""
Async client for the video archive backend.

Wraps every HTTP capability of the backend in one method that takes typed
parameters and returns typed models, and normalizes failures into the
exceptions of ``vidarchive.exceptions``:

- non-2xx answers raise RequestException with a flattened ``detail``
- 404 on status/delete raises ResourceNotFoundException
- exceeded timeouts raise ArchiveTimeoutException

The client never retries; callers own their retry policy.

Usage:
    async with ArchiveClient(base_url="http://localhost:8000") as client:
        results = await client.search_by_text(SearchRequest(query_text="red car"))
"""

import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

import httpx
from loguru import logger

from ..exceptions import (
    ArchiveTimeoutException,
    RequestException,
    ResourceNotFoundException,
    ValidationException,
)
from ..models import IngestionJob, SearchRequest, SearchResult, UrlJobRequest, VideoSummary
from ..utils.error_handler import flatten_detail
from ..utils.validation import (
    normalize_video_name,
    require_text,
    validate_fps,
    validate_source_type,
    video_name_from_filename,
)

DEFAULT_TIMEOUT = 120.0


def _form_bool(value: bool) -> str:
    return "true" if value else "false"


class ArchiveClient:
    """Client for interacting with the archive backend."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the archive client.

        Args:
            base_url: Root URL of the backend (default: http://localhost:8000)
            timeout: Per-request timeout in seconds (default: 120, searches can be slow)
            transport: Optional httpx transport, used to route requests to a fake backend
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_config(cls, config, transport: Optional[httpx.AsyncBaseTransport] = None) -> "ArchiveClient":
        """Build a client from a ClientConfig."""
        return cls(base_url=config.api_url, timeout=config.timeout, transport=transport)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        logger.debug(f"API Request: {method} {path}")
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"API Timeout: {method} {path} exceeded {self.timeout}s")
            raise ArchiveTimeoutException(
                f"{method} {path} timed out after {self.timeout}s",
                error_code="TIMEOUT",
                details={"original_exception": type(e).__name__},
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"API Error: {method} {path}: {e}")
            raise RequestException(str(e) or type(e).__name__, status=0, error_code="CONNECTION_ERROR") from e

        if response.is_success:
            return response

        detail = self._extract_detail(response)
        message = flatten_detail(detail, response.status_code)
        logger.error(f"API Error: {method} {path} -> {response.status_code}: {message}")
        if response.status_code == 404:
            raise ResourceNotFoundException(message, error_code="NOT_FOUND", details={"status": 404, "detail": detail})
        raise RequestException(message, status=response.status_code, detail=detail)

    @staticmethod
    def _extract_detail(response: httpx.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            return response.text or None
        if isinstance(body, dict):
            return body.get("detail", body.get("message"))
        return body

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise RequestException(f"Invalid JSON in response: {e}", status=response.status_code) from e
        if not isinstance(body, dict):
            raise RequestException("Unexpected response shape", status=response.status_code, detail=body)
        return body

    @staticmethod
    def _results(body: Dict[str, Any]) -> List[SearchResult]:
        return [SearchResult.model_validate(item) for item in body.get("results") or []]

    async def health(self) -> Dict[str, Any]:
        """Backend health check."""
        return self._json(await self._request("GET", "/status"))

    async def storage_info(self) -> Dict[str, Any]:
        return self._json(await self._request("GET", "/storage/info"))

    async def search_by_text(self, request: SearchRequest) -> List[SearchResult]:
        """
        Search frames and objects with a text query.

        Args:
            request: Search request carrying ``query_text``

        Returns:
            List of results ranked by similarity, as the backend ordered them
        """
        if request.query_text is None:
            raise ValidationException("Text search requires query_text")
        payload = {
            "query": request.query_text,
            "search_frames": request.search_frames,
            "search_objects": request.search_objects,
            "max_results": request.max_results,
            "video_names": request.video_name_filter(),
        }
        response = await self._request("POST", "/api/search/text", json=payload)
        results = self._results(self._json(response))
        logger.info(f"Found {len(results)} results for query: '{request.query_text}'")
        return results

    async def search_by_image(self, request: SearchRequest) -> List[SearchResult]:
        """
        Search frames and objects similar to an image.

        The image goes as the multipart ``image`` field; ``video_names`` is a
        comma-joined field sent only when a filter is active.
        """
        if request.query_image is None:
            raise ValidationException("Image search requires query_image")
        data = {
            "search_frames": _form_bool(request.search_frames),
            "search_objects": _form_bool(request.search_objects),
            "max_results": str(request.max_results),
        }
        names = request.video_name_filter()
        if names:
            data["video_names"] = ",".join(names)
        files = {"image": (request.image_filename, request.query_image, request.image_content_type)}
        response = await self._request("POST", "/api/search/image", data=data, files=files)
        results = self._results(self._json(response))
        logger.info(f"Found {len(results)} results for image: '{request.image_filename}'")
        return results

    async def list_video_names(self, status: Optional[str] = None) -> List[str]:
        params = {"status": status} if status else None
        body = self._json(await self._request("GET", "/api/videos/names", params=params))
        return list(body.get("video_names") or [])

    async def list_videos(self) -> List[VideoSummary]:
        body = self._json(await self._request("GET", "/api/videos/list"))
        return [VideoSummary.model_validate(item) for item in body.get("videos") or []]

    async def get_job_status(self, video_name: str) -> IngestionJob:
        """Fetch the processing status of a video; raises ResourceNotFoundException if unknown."""
        response = await self._request("GET", f"/api/videos/status/{quote(video_name, safe='')}")
        body = self._json(response)
        body.setdefault("video_name", video_name)
        return IngestionJob.model_validate(body)

    async def submit_upload(self, file_bytes: bytes, filename: str, content_type: str = "application/octet-stream") -> str:
        """
        Upload a video file for processing.

        Returns:
            str: The video name the backend will track the job under
        """
        expected_name = video_name_from_filename(filename)
        if not file_bytes or not expected_name:
            raise ValidationException("Please select a video file")
        files = {"file": (filename, file_bytes, content_type)}
        response = await self._request("POST", "/api/videos/upload", files=files)
        logger.info(f"Upload accepted for {expected_name}: {self._json(response).get('message')}")
        return expected_name

    async def submit_url_job(self, video_name: str, source_type: str, source_url: str, fps: int = 1, force: bool = False) -> str:
        """
        Ask the backend to download and process a video from a URL.

        Args:
            video_name: Name to store the video under; normalized before sending
            source_type: One of ``upload``, ``youtube``, ``drive``
            source_url: Where the backend downloads the video from
            fps: Frames extracted per second (1-30)
            force: Reprocess even if the video already exists

        Returns:
            str: The normalized video name the job is tracked under
        """
        name = normalize_video_name(require_text(video_name, "Please enter a video name"))
        if not name:
            raise ValidationException("Video name contains only invalid characters")
        body = UrlJobRequest(
            video_name=name,
            source_type=validate_source_type(source_type),
            source_url=require_text(source_url, "Please enter a video URL"),
            fps=validate_fps(fps),
            force=force,
        )
        response = await self._request("POST", "/api/videos/process", json=body.model_dump())
        logger.info(f"Processing accepted for {name}: {self._json(response).get('message')}")
        return name

    async def delete_video(self, video_name: str) -> None:
        await self._request("DELETE", f"/api/videos/{quote(video_name, safe='')}")
        logger.info(f"Deleted video {video_name}")

    def stream_url(self, video_name: str, start_seconds: Optional[float] = None) -> str:
        """
        URL a media player can load to play a video.

        A cache-busting ``t`` parameter is always added; ``start_seconds``
        becomes a ``#t=`` media fragment so playback starts at that offset.
        """
        query = urlencode({"t": int(time.time() * 1000)})
        url = f"{self.base_url}/api/videos/stream/{quote(video_name, safe='')}?{query}"
        if start_seconds is not None and start_seconds > 0:
            url += f"#t={start_seconds:g}"
        return url

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
