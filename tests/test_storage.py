import asyncio

import pytest

from studio.services.storage import (
    UNSET,
    Local,
    Remote,
    location_from_columns,
    location_to_columns,
)


def test_location_columns():
    assert location_to_columns(Local("generated/a.png")) == ("local", "generated/a.png")
    assert location_to_columns(Remote("s3://bucket/a.png")) == ("remote", "s3://bucket/a.png")
    assert location_to_columns(UNSET) == ("unset", None)

    assert location_from_columns("local", "generated/a.png") == Local("generated/a.png")
    assert location_from_columns("remote", "https://cdn/x.jpg") == Remote("https://cdn/x.jpg")
    assert location_from_columns("unset", None) is UNSET
    assert location_from_columns("local", None) is UNSET


def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError):
        location_from_columns("ftp", "x")


def test_local_save_read_delete(storage):
    async def scenario():
        location = await storage.save(b"png-bytes", "generated/p1/a.png", "image/png")
        assert location == Local("generated/p1/a.png")
        assert await storage.read(location) == b"png-bytes"
        assert await storage.download_bytes("/files/generated/p1/a.png") == b"png-bytes"
        assert storage.get_public_url(location) == "/files/generated/p1/a.png"

        assert await storage.delete(location) is True
        assert not (storage.base_path / "generated/p1/a.png").exists()

    asyncio.run(scenario())


def test_keys_cannot_escape_storage_root(storage):
    with pytest.raises(ValueError):
        asyncio.run(storage.save(b"x", "../outside.png"))


def test_delete_external_url_is_refused(storage):
    assert asyncio.run(storage.delete(Remote("https://cdn.example.com/a.jpg"))) is False


def test_public_url_for_bucket_objects(storage):
    assert storage.get_public_url(Remote("gs://bucket/generated/a.png")) == "/files/generated/a.png"
    assert storage.get_public_url(Remote("https://cdn/x.jpg")) == "https://cdn/x.jpg"
    assert storage.get_public_url(UNSET) is None


def test_local_file_io_runs_off_the_event_loop(storage, monkeypatch):
    import studio.services.storage as storage_module

    offloaded = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        offloaded.append(func.__name__)
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(storage_module.asyncio, "to_thread", recording_to_thread)

    async def scenario():
        location = await storage.save(b"bytes", "generated/p1/a.png")
        data = await storage.get_file("generated/p1/a.png")
        await storage.delete(location)
        return data

    assert asyncio.run(scenario()) == b"bytes"
    assert offloaded == ["_write_local", "_read_local", "_delete_local"]
