import asyncio

import pytest

from studio.models import Product, ProductStatus
from studio.services.orchestrator import build_unit
from studio.schemas.unit import UnitOfWork
from studio.services.storage import Local
from tests.conftest import BrokenStore, FakeGenerator, FakeSink


def unit_for(session_factory, product_id, intent_id, **hints):
    from studio.models import RenderingIntent

    db = session_factory()
    try:
        product = db.get(Product, product_id)
        intent = db.get(RenderingIntent, intent_id)
        return build_unit(product, intent, **hints)
    finally:
        db.close()


def test_successful_unit_records_completed_artifact(executor, session_factory, seed, generator, sink, storage):
    product_id = seed.product("Blue Mug", external_id="B00MUG", assets=[{"data": b"ref-bytes"}])
    intent_id = seed.intent("Photo of {{item_name}}")
    unit = unit_for(session_factory, product_id, intent_id)

    result = asyncio.run(executor.execute(unit))

    assert result.ok
    assert result.version == 1
    (artifact,) = seed.artifacts(product_id=product_id)
    assert artifact.id == result.artifact_id
    assert artifact.status == "COMPLETED"
    assert artifact.prompt_used == "Photo of Blue Mug"
    assert artifact.reference_asset_id == seed.asset_ids(product_id)[0]
    assert artifact.file_size == len(b"generated:Photo of Blue Mug")
    assert artifact.storage_kind == "local"
    assert artifact.storage_uri.startswith(f"generated/{product_id}/B00MUG_lifestyle-shot_v1_")
    assert asyncio.run(storage.read(Local(artifact.storage_uri))) == b"generated:Photo of Blue Mug"

    assert generator.calls == [("Photo of Blue Mug", b"ref-bytes")]
    assert sink.increments == [("images_generated", 1)]

    db = session_factory()
    assert db.get(Product, product_id).status == ProductStatus.IN_PROGRESS
    db.close()


def test_text_only_generation_without_assets(executor, session_factory, seed, generator):
    product_id = seed.product("Blue Mug")
    intent_id = seed.intent("Studio shot of {{title}}")

    result = asyncio.run(executor.execute(unit_for(session_factory, product_id, intent_id)))

    assert result.ok
    assert generator.calls == [("Studio shot of Blue Mug", None)]
    assert seed.artifacts(product_id=product_id)[0].reference_asset_id is None


def test_generation_failure_rejects_record(executor, session_factory, seed, sink):
    product_id = seed.product("Cursed Lamp")
    intent_id = seed.intent("Photo of {{title}}")
    executor.generators["image"] = FakeGenerator(fail_for=["Cursed"])

    result = asyncio.run(executor.execute(unit_for(session_factory, product_id, intent_id)))

    assert not result.ok
    assert result.failure_kind == "generation"
    assert result.step == "generate"
    assert "refused" in result.reason
    (artifact,) = seed.artifacts(product_id=product_id)
    assert artifact.status == "REJECTED"
    assert artifact.failure_kind == "generation"
    assert sink.increments == []


def test_timeout_rejects_only_that_unit(make_executor, session_factory, seed):
    slow = seed.product("Slow Mug")
    fast = seed.product("Fast Mug")
    intent_id = seed.intent("Photo of {{title}}")
    executor = make_executor(generators={"image": FakeGenerator(stall_for=["Slow"])}, timeout=0.2)

    async def scenario():
        return await asyncio.gather(
            executor.execute(unit_for(session_factory, slow, intent_id)),
            executor.execute(unit_for(session_factory, fast, intent_id)),
        )

    slow_result, fast_result = asyncio.run(scenario())

    assert not slow_result.ok
    assert slow_result.failure_kind == "timeout"
    assert seed.artifacts(product_id=slow)[0].status == "REJECTED"
    assert seed.artifacts(product_id=slow)[0].failure_kind == "timeout"
    assert fast_result.ok
    assert seed.artifacts(product_id=fast)[0].status == "COMPLETED"


def test_video_units_outlast_the_image_timeout(make_executor, session_factory, seed):
    product_id = seed.product("Blue Mug")
    video_intent = seed.intent("Turntable of {{title}}", name="Spin", media="video")
    image_intent = seed.intent("Photo of {{title}}")
    slow = FakeGenerator(mime_type="video/mp4", delay=0.4)
    executor = make_executor(
        generators={"image": FakeGenerator(delay=0.4), "video": slow},
        timeout=0.2,
        video_timeout=2.0,
    )

    video_result = asyncio.run(executor.execute(unit_for(session_factory, product_id, video_intent)))
    image_result = asyncio.run(executor.execute(unit_for(session_factory, product_id, image_intent)))

    assert video_result.ok
    assert seed.artifacts(intent_id=video_intent)[0].mime_type == "video/mp4"
    assert not image_result.ok
    assert image_result.failure_kind == "timeout"


def test_video_timeout_must_cover_veo_wait():
    from pydantic import ValidationError
    from studio.core.config import Settings

    with pytest.raises(ValidationError):
        Settings(VEO_MAX_WAIT_TIME=360, VIDEO_GENERATION_TIMEOUT_SECONDS=180)
    assert Settings().VIDEO_GENERATION_TIMEOUT_SECONDS >= Settings().VEO_MAX_WAIT_TIME


def test_storage_failure_counts_as_failure(make_executor, session_factory, seed, tmp_path, sink):
    product_id = seed.product("Blue Mug")
    intent_id = seed.intent("Photo of {{title}}")
    executor = make_executor(store=BrokenStore(base_path=str(tmp_path / "broken")))

    result = asyncio.run(executor.execute(unit_for(session_factory, product_id, intent_id)))

    assert not result.ok
    assert result.failure_kind == "storage"
    assert result.step == "persist"
    assert seed.artifacts(product_id=product_id)[0].status == "REJECTED"
    assert sink.increments == []


def test_bad_reference_hint_rejected_without_generation(executor, session_factory, seed, generator):
    product_id = seed.product("Blue Mug", assets=[{"data": b"a"}])
    intent_id = seed.intent("Photo of {{title}}")
    unit = unit_for(session_factory, product_id, intent_id, reference_asset_id="ref_does_not_exist")

    result = asyncio.run(executor.execute(unit))

    assert not result.ok
    assert result.failure_kind == "resolution"
    assert result.step == "resolve_reference"
    assert result.version == 1
    assert generator.calls == []
    (artifact,) = seed.artifacts(product_id=product_id)
    assert artifact.status == "REJECTED"
    assert artifact.failure_kind == "resolution"


def test_regeneration_records_parent_and_source_lineage(executor, session_factory, seed):
    product_id = seed.product("Blue Mug", assets=[{"data": b"a"}])
    intent_id = seed.intent("Photo of {{title}}")

    first = asyncio.run(executor.execute(unit_for(session_factory, product_id, intent_id)))
    second = asyncio.run(executor.execute(
        unit_for(session_factory, product_id, intent_id, parent_artifact_id=first.artifact_id)
    ))

    assert second.ok
    assert second.version == 2
    artifacts = seed.artifacts(product_id=product_id)
    assert artifacts[1].parent_artifact_id == first.artifact_id
    assert artifacts[1].reference_asset_id == seed.asset_ids(product_id)[0]


def test_sink_errors_do_not_fail_the_unit(make_executor, session_factory, seed):
    product_id = seed.product("Blue Mug")
    intent_id = seed.intent("Photo of {{title}}")
    executor = make_executor(sink_override=FakeSink(fail=True))

    result = asyncio.run(executor.execute(unit_for(session_factory, product_id, intent_id)))
    assert result.ok


def test_unexpected_errors_become_internal_failures(executor, seed):
    unit = UnitOfWork(product_id="prod_missing", intent_id="intent_missing", prompt_template="x")

    async def explode(*args, **kwargs):
        raise RuntimeError("boom")

    executor.resolver.materialize = explode
    result = asyncio.run(executor.execute(unit))

    assert not result.ok
    assert result.failure_kind == "internal"
    assert result.reason == "boom"
