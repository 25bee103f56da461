import json

import httpx
import pytest

from vidarchive.client import ArchiveClient
from .fake_backend import FakeArchiveState, create_app


class RecordingTransport:
    """httpx.MockTransport wrapper that keeps every request it served."""

    def __init__(self, handler):
        self.requests = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return self._handler(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content)


def make_result(rank: int, video_name: str = "street_cam", result_type: str = "frame", **metadata) -> dict:
    return {
        "result_type": result_type,
        "similarity": round(0.99 - rank * 0.01, 2),
        "url": f"http://cdn.test/{video_name}/{rank}.jpg",
        "metadata": {"video_name": video_name, "timestamp": float(rank * 2), "frame_index": rank * 60, **metadata},
    }


@pytest.fixture
def fake_state():
    return FakeArchiveState()


@pytest.fixture
async def backend_client(fake_state):
    """ArchiveClient wired to the in-process FastAPI fake backend."""
    transport = httpx.ASGITransport(app=create_app(fake_state))
    client = ArchiveClient(base_url="http://testserver", timeout=5.0, transport=transport)
    yield client
    await client.close()


@pytest.fixture
async def mock_client():
    """Factory building an ArchiveClient over a RecordingTransport with the given handler."""
    clients = []

    def factory(handler, timeout: float = 5.0):
        recorder = RecordingTransport(handler)
        client = ArchiveClient(base_url="http://testserver", timeout=timeout, transport=recorder.transport)
        clients.append(client)
        return client, recorder

    yield factory
    for client in clients:
        await client.close()
