import json

import pytest

from vidarchive.exceptions import ValidationException
from vidarchive.storage import InMemoryStorage, JsonFileStorage, RecentImageStore
from vidarchive.storage.recent_images import STORAGE_KEY, decode_data_url, encode_data_url


@pytest.fixture
def store():
    return RecentImageStore(InMemoryStorage())


async def test_newest_first(store):
    await store.record("a.png", b"a")
    await store.record("b.png", b"b")

    assert [e.filename for e in await store.list()] == ["b.png", "a.png"]


async def test_capacity_evicts_oldest(store):
    for i in range(11):
        await store.record(f"img{i}.jpg", f"image-{i}".encode())

    entries = await store.list()

    assert len(entries) == 10
    assert entries[0].filename == "img10.jpg"
    assert "img0.jpg" not in [e.filename for e in entries]


async def test_ids_are_unique_and_increasing(store):
    first = await store.record("a.png", b"a")
    second = await store.record("b.png", b"b")

    assert second.id > first.id


async def test_same_image_is_moved_to_front_not_duplicated(store):
    await store.record("a.png", b"same")
    await store.record("b.png", b"other")
    await store.record("a-again.png", b"same")

    assert [e.filename for e in await store.list()] == ["a-again.png", "b.png"]


async def test_materialize_restores_file(store):
    entry = await store.record("photo.jpg", b"\xff\xd8\xff\xe0jpeg-bytes")

    image = RecentImageStore.materialize(entry)

    assert image.filename == "photo.jpg"
    assert image.content_type == "image/jpeg"
    assert image.data == b"\xff\xd8\xff\xe0jpeg-bytes"


async def test_empty_image_is_rejected(store):
    with pytest.raises(ValidationException):
        await store.record("empty.png", b"")


async def test_remove_and_clear(store):
    kept = await store.record("a.png", b"a")
    dropped = await store.record("b.png", b"b")

    assert await store.remove(dropped.id) is True
    assert await store.remove(dropped.id) is False
    assert [e.id for e in await store.list()] == [kept.id]
    assert await store.get(kept.id) == kept

    await store.clear()
    assert await store.list() == []


@pytest.mark.parametrize("raw", ["not json", json.dumps({"id": 1}), json.dumps([{"filename": "x"}])])
async def test_corrupt_state_reads_as_empty(raw):
    store = RecentImageStore(InMemoryStorage({STORAGE_KEY: raw}))

    assert await store.list() == []
    await store.record("a.png", b"a")
    assert len(await store.list()) == 1


async def test_json_file_storage_persists_between_instances(tmp_path):
    path = tmp_path / "nested" / "recent.json"
    await RecentImageStore(JsonFileStorage(str(path))).record("a.png", b"a")

    reopened = RecentImageStore(JsonFileStorage(str(path)))

    assert [e.filename for e in await reopened.list()] == ["a.png"]
    assert STORAGE_KEY in json.loads(path.read_text())


async def test_unreadable_file_is_overwritten(tmp_path):
    path = tmp_path / "recent.json"
    path.write_text("{broken")
    store = RecentImageStore(JsonFileStorage(str(path)))

    assert await store.list() == []
    await store.record("a.png", b"a")

    assert len(await store.list()) == 1


def test_data_url_round_trip_and_rejection():
    url = encode_data_url(b"\x00\x01", "image/png")

    assert url.startswith("data:image/png;base64,")
    assert decode_data_url(url) == ("image/png", b"\x00\x01")
    with pytest.raises(ValidationException):
        decode_data_url("http://example.com/a.png")
    with pytest.raises(ValidationException):
        decode_data_url("data:image/png;base64,@@@")
