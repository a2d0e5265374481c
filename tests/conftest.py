import asyncio
import os
import sys
import tempfile
from pathlib import Path

# Keep module-level engine and storage away from the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOCAL_STORAGE_PATH", tempfile.mkdtemp(prefix="studio-test-"))

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest

from studio.core.database import build_engine, build_session_factory, init_db
from studio.models import (
    GeneratedArtifact,
    Product,
    ReferenceAsset,
    RenderingIntent,
    TemplateVariable,
)
from studio.services.executor import UnitOfWorkExecutor
from studio.services.gemini_image import GeneratedMedia
from studio.services.orchestrator import JobOrchestrator
from studio.services.reference_resolver import ReferenceResolver
from studio.services.storage import StorageService
from studio.services.versioning import VersionAllocator
from studio.workers.base import GenerationFailure


class FakeGenerator:
    """Media generator double. Fails or stalls when the prompt mentions a marker."""

    model_name = "fake-image-model"

    def __init__(self, fail_for=(), stall_for=(), mime_type="image/png", delay=0):
        self.fail_for = tuple(fail_for)
        self.stall_for = tuple(stall_for)
        self.mime_type = mime_type
        self.delay = delay
        self.calls = []

    async def generate(self, prompt, reference_bytes=None):
        self.calls.append((prompt, reference_bytes))
        if any(marker in prompt for marker in self.fail_for):
            raise GenerationFailure("model refused the prompt")
        if any(marker in prompt for marker in self.stall_for):
            await asyncio.sleep(30)
        await asyncio.sleep(self.delay)
        return GeneratedMedia(
            data=b"generated:" + prompt.encode(),
            width=64,
            height=64,
            mime_type=self.mime_type,
            model=self.model_name,
        )


class FakeSink:
    def __init__(self, fail=False):
        self.fail = fail
        self.increments = []

    async def increment_daily(self, metric, amount=1):
        if self.fail:
            raise RuntimeError("analytics down")
        self.increments.append((metric, amount))


class BrokenStore(StorageService):
    """Local store whose writes always fail."""

    async def save(self, data, key, content_type="image/png"):
        raise OSError("disk full")


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'studio.db'}")
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def storage(tmp_path):
    return StorageService(base_path=str(tmp_path / "files"))


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def make_executor(session_factory, storage, generator, sink):
    def _make(store=None, generators=None, timeout=5.0, video_timeout=5.0, sink_override=None):
        store = store or storage
        return UnitOfWorkExecutor(
            session_factory=session_factory,
            resolver=ReferenceResolver(storage),
            generators=generators or {"image": generator, "video": generator},
            store=store,
            sink=sink_override or sink,
            allocator=VersionAllocator(session_factory, max_attempts=10),
            timeout=timeout,
            video_timeout=video_timeout,
        )
    return _make


@pytest.fixture
def executor(make_executor):
    return make_executor()


@pytest.fixture
def orchestrator(session_factory, executor):
    return JobOrchestrator(session_factory, executor, max_concurrency=2, dispatch_mode="inline")


@pytest.fixture
def seed(session_factory, storage):
    """Helpers that insert catalog rows and return their ids."""

    class Seeder:
        def product(self, title, external_id=None, category=None, assets=()):
            db = session_factory()
            try:
                product = Product(title=title, external_id=external_id, category=category)
                db.add(product)
                db.flush()
                for position, spec in enumerate(assets):
                    spec = dict(spec)
                    data = spec.pop("data", None)
                    asset = ReferenceAsset(product_id=product.id, position=spec.pop("position", position), **spec)
                    if data is not None:
                        key = f"references/{product.id}/{position}.jpg"
                        path = storage.base_path / key
                        path.parent.mkdir(parents=True, exist_ok=True)
                        path.write_bytes(data)
                        asset.storage_kind = "local"
                        asset.storage_uri = key
                    db.add(asset)
                db.commit()
                return product.id
            finally:
                db.close()

        def intent(self, template, name="Lifestyle Shot", media="image", variables=()):
            db = session_factory()
            try:
                intent = RenderingIntent(
                    name=name,
                    prompt_template=template,
                    media=media,
                    kind="template" if variables else "image_type",
                )
                for position, spec in enumerate(variables):
                    intent.variables.append(TemplateVariable(position=position, **spec))
                db.add(intent)
                db.commit()
                return intent.id
            finally:
                db.close()

        def asset_ids(self, product_id):
            db = session_factory()
            try:
                rows = (
                    db.query(ReferenceAsset)
                    .filter(ReferenceAsset.product_id == product_id)
                    .order_by(ReferenceAsset.position)
                    .all()
                )
                return [row.id for row in rows]
            finally:
                db.close()

        def artifacts(self, **filters):
            db = session_factory()
            try:
                return (
                    db.query(GeneratedArtifact)
                    .filter_by(**filters)
                    .order_by(GeneratedArtifact.version)
                    .all()
                )
            finally:
                db.close()

    return Seeder()
