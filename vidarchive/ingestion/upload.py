import mimetypes
import os

import aiofiles
from loguru import logger

from ..exceptions import ArchiveException, ValidationException
from ..utils.validation import (
    normalize_video_name,
    require_text,
    validate_fps,
    validate_source_type,
    video_name_from_filename,
)
from .status_tracker import IngestionStatusTracker


class UploadCoordinator:
    """
    Submits videos to the ingestion pipeline and tracks them.

    The job is tracked optimistically under its normalized name before the
    submission is sent, so status polling can start right away. If the backend
    rejects the submission the optimistic job is dropped again.

    Attributes:
        client: ArchiveClient used for submissions
        tracker: IngestionStatusTracker receiving the optimistic jobs
        allow_concurrent: Accept a new submission while another video is still processing
    """

    def __init__(self, client, tracker: IngestionStatusTracker, allow_concurrent: bool = False):
        self.client = client
        self.tracker = tracker
        self.allow_concurrent = allow_concurrent

    def _check_idle(self):
        if not self.allow_concurrent and self.tracker.has_active_jobs:
            raise ValidationException(
                "A video is currently being processed. Please wait for it to complete before processing another video."
            )

    async def _submit(self, video_name: str, submission):
        previous = self.tracker.get(video_name)
        job = self.tracker.track(video_name)
        created = job is not previous
        try:
            accepted = await submission
        except ArchiveException as e:
            logger.error(f"Submission of {video_name} was rejected: {e}")
            # only drop the entry this submission created; a live job keeps polling
            if created and self.tracker.get(video_name) is job:
                self.tracker.discard(video_name, "submission failed")
            raise
        if accepted != video_name:
            logger.warning(f"Backend accepted {accepted} while {video_name} is tracked")
        return video_name

    async def upload_bytes(self, data: bytes, filename: str, content_type: str = None) -> str:
        """
        Upload a video file's content.

        Args:
            data: Video bytes
            filename: Original file name; the video name is derived from it
            content_type: MIME type, guessed from the file name when omitted

        Returns:
            str: The normalized name the job is tracked under
        """
        if not data:
            raise ValidationException("Please select a video file")
        video_name = video_name_from_filename(filename)
        if not video_name:
            raise ValidationException(f"Cannot derive a video name from {filename!r}")
        self._check_idle()
        content_type = content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        return await self._submit(video_name, self.client.submit_upload(data, filename, content_type))

    async def upload_file(self, path: str) -> str:
        """Read a local video file and upload it."""
        if not path or not os.path.isfile(path):
            raise ValidationException(f"Video file not found: {path}")
        async with aiofiles.open(path, "rb") as f:
            data = await f.read()
        return await self.upload_bytes(data, os.path.basename(path))

    async def process_url(self, video_name: str, source_type: str, source_url: str, fps: int = 1) -> str:
        """
        Ask the backend to fetch and process a video from YouTube or Google Drive.

        Returns:
            str: The normalized name the job is tracked under
        """
        name = normalize_video_name(require_text(video_name, "Please enter a video name"))
        if not name:
            raise ValidationException("Video name contains only invalid characters")
        require_text(source_url, "Please enter a video URL")
        validate_source_type(source_type)
        validate_fps(fps)
        self._check_idle()
        return await self._submit(name, self.client.submit_url_job(name, source_type, source_url, fps))
