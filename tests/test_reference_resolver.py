import asyncio

import pytest

from studio.models import GeneratedArtifact
from studio.services.reference_resolver import ReferenceHints, ReferenceResolver, ReferenceSource
from studio.services.storage import Local, Remote
from studio.workers.base import ResolutionError


@pytest.fixture
def resolver(storage):
    return ReferenceResolver(storage)


def add_artifact(session_factory, product_id, intent_id, version=1, reference_asset_id=None, stored=True):
    db = session_factory()
    try:
        artifact = GeneratedArtifact(
            product_id=product_id,
            intent_id=intent_id,
            version=version,
            status="COMPLETED",
            prompt_used="p",
            reference_asset_id=reference_asset_id,
            storage_kind="local" if stored else "unset",
            storage_uri=f"generated/{product_id}/v{version}.png" if stored else None,
        )
        db.add(artifact)
        db.commit()
        return artifact.id
    finally:
        db.close()


def resolve(resolver, session_factory, product_id, **hints):
    db = session_factory()
    try:
        return resolver.resolve(db, product_id, ReferenceHints(**hints))
    finally:
        db.close()


def test_explicit_asset_beats_every_other_hint(resolver, session_factory, seed):
    product_id = seed.product("Mug", assets=[{"data": b"a"}, {"data": b"b"}])
    intent_id = seed.intent("x")
    first, second = seed.asset_ids(product_id)
    artifact_id = add_artifact(session_factory, product_id, intent_id, reference_asset_id=first)

    resolution = resolve(
        resolver, session_factory, product_id,
        reference_asset_id=second, base_artifact_id=artifact_id, parent_artifact_id=artifact_id,
    )
    assert resolution.source == ReferenceSource.EXPLICIT
    assert resolution.reference_asset_id == second
    assert resolution.parent_artifact_id is None


def test_explicit_asset_of_another_product_fails(resolver, session_factory, seed):
    mug = seed.product("Mug", assets=[{"data": b"a"}])
    lamp = seed.product("Lamp", assets=[{"data": b"b"}])

    with pytest.raises(ResolutionError):
        resolve(resolver, session_factory, lamp, reference_asset_id=seed.asset_ids(mug)[0])


def test_base_artifact_propagates_reference_lineage(resolver, session_factory, seed):
    product_id = seed.product("Mug", assets=[{"data": b"a"}])
    intent_id = seed.intent("x")
    asset_id = seed.asset_ids(product_id)[0]
    artifact_id = add_artifact(session_factory, product_id, intent_id, reference_asset_id=asset_id)

    resolution = resolve(resolver, session_factory, product_id, base_artifact_id=artifact_id)
    assert resolution.source == ReferenceSource.BASE_ARTIFACT
    assert resolution.reference_asset_id == asset_id
    assert resolution.parent_artifact_id is None
    assert resolution.location == Local(f"generated/{product_id}/v1.png")


def test_parent_artifact_sets_parent_lineage(resolver, session_factory, seed):
    product_id = seed.product("Mug")
    intent_id = seed.intent("x")
    artifact_id = add_artifact(session_factory, product_id, intent_id)

    resolution = resolve(resolver, session_factory, product_id, parent_artifact_id=artifact_id)
    assert resolution.source == ReferenceSource.PARENT_ARTIFACT
    assert resolution.parent_artifact_id == artifact_id


def test_artifact_without_stored_media_fails(resolver, session_factory, seed):
    product_id = seed.product("Mug")
    intent_id = seed.intent("x")
    artifact_id = add_artifact(session_factory, product_id, intent_id, stored=False)

    with pytest.raises(ResolutionError):
        resolve(resolver, session_factory, product_id, base_artifact_id=artifact_id)
    with pytest.raises(ResolutionError):
        resolve(resolver, session_factory, product_id, parent_artifact_id="art_missing")


def test_no_hints_uses_first_asset_by_position(resolver, session_factory, seed):
    product_id = seed.product("Mug", assets=[
        {"data": b"late", "position": 5},
        {"data": b"early", "position": 1},
    ])
    ids = seed.asset_ids(product_id)

    resolution = resolve(resolver, session_factory, product_id)
    assert resolution.source == ReferenceSource.FALLBACK
    assert resolution.reference_asset_id == ids[0]


def test_no_assets_means_text_only(resolver, session_factory, seed):
    product_id = seed.product("Mug")

    resolution = resolve(resolver, session_factory, product_id)
    assert resolution.is_text_only
    assert resolution.reference_asset_id is None


def test_catalog_url_used_when_asset_not_stored(resolver, session_factory, seed):
    product_id = seed.product("Mug", assets=[{"source_url": "https://m.media-amazon.com/images/I/mug.jpg"}])

    resolution = resolve(resolver, session_factory, product_id)
    assert resolution.location == Remote("https://m.media-amazon.com/images/I/mug.jpg")


def test_local_reference_bytes_are_read_from_storage(resolver, session_factory, seed):
    product_id = seed.product("Mug", assets=[{"data": b"local-bytes"}])

    async def scenario():
        async with resolver.acquire(session_factory, product_id) as reference:
            assert reference.data == b"local-bytes"
        return reference

    assert asyncio.run(scenario()).data is None


def test_remote_bytes_released_on_success_and_failure(resolver, session_factory, seed, monkeypatch):
    product_id = seed.product("Mug", assets=[{"source_url": "https://cdn.example.com/mug.jpg"}])

    async def fake_download(url):
        return b"remote-bytes"

    monkeypatch.setattr(resolver.storage, "download_bytes", fake_download)
    seen = []

    async def scenario(fail):
        async with resolver.acquire(session_factory, product_id) as reference:
            assert reference.data == b"remote-bytes"
            seen.append(reference)
            if fail:
                raise RuntimeError("generation blew up")

    asyncio.run(scenario(fail=False))
    with pytest.raises(RuntimeError):
        asyncio.run(scenario(fail=True))

    assert len(seen) == 2
    assert all(reference.data is None for reference in seen)


def test_download_failure_is_resolution_failure(resolver, session_factory, seed, monkeypatch):
    product_id = seed.product("Mug", assets=[{"source_url": "https://cdn.example.com/mug.jpg"}])

    async def broken_download(url):
        raise ConnectionError("reset by peer")

    monkeypatch.setattr(resolver.storage, "download_bytes", broken_download)

    async def scenario():
        async with resolver.acquire(session_factory, product_id):
            pass

    with pytest.raises(ResolutionError):
        asyncio.run(scenario())
