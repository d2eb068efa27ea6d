"""
Shared test fixtures and configuration for entire test suite.

Provides: file-backed SQLite database, in-memory blob stores, scripted
rasterizer, seeded documents, and wired services
Dependencies: pytest, pytest-asyncio, sqlalchemy, aiosqlite
System role: Test infrastructure and fixture management
"""

import time
import uuid
from datetime import datetime, timedelta
from typing import Callable, Sequence
from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from studyroom.application.services import (
    ConversionJobService,
    ConversionOrchestrator,
    DiagnosticsService,
    MaintenanceService,
    PageCacheService,
    PageRetrievalService,
)
from studyroom.boundary.db.base import Base, utc_now
from studyroom.boundary.db.models import (
    DocumentModel,
    PageCacheModel,
    StudyRoomItemModel,
)
from studyroom.boundary.storage.blob_store import BlobInfo
from studyroom.configs.conversion import ConversionSettings
from studyroom.core.exceptions import BlobNotFoundError, StorageError
from studyroom.core.pages import (
    GenerationMethod,
    ImageFormat,
    QualityLevel,
    RasterOptions,
    RenderedPage,
)

FAKE_PDF = b"%PDF-1.4\n% study room test fixture\n"


class InMemoryBlobStore:
    """Dict-backed BlobStore with deterministic signed URLs and failure switches."""

    def __init__(self, public: bool = False) -> None:
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.public = public
        self.fail_put_after: int | None = None
        self.fail_list = False
        self.fail_remove = False
        self.put_calls = 0
        self.on_put: Callable[[str], None] | None = None

    @property
    def is_public(self) -> bool:
        return self.public

    def put(self, path: str, data: bytes, content_type: str) -> None:
        if self.fail_put_after is not None and self.put_calls >= self.fail_put_after:
            raise StorageError("Simulated upload failure", operation="put", path=path)
        self.put_calls += 1
        self.objects[path] = bytes(data)
        self.content_types[path] = content_type
        if self.on_put is not None:
            self.on_put(path)

    def get(self, path: str) -> bytes:
        if path not in self.objects:
            raise BlobNotFoundError(path)
        return self.objects[path]

    def list(self, prefix: str) -> list[BlobInfo]:
        if self.fail_list:
            raise StorageError("Simulated list failure", operation="list", path=prefix)
        return [
            BlobInfo(name=name, size=len(data))
            for name, data in sorted(self.objects.items())
            if name.startswith(prefix)
        ]

    def remove(self, paths: Sequence[str]) -> None:
        if self.fail_remove:
            raise StorageError("Simulated remove failure", operation="remove")
        for path in paths:
            self.objects.pop(path, None)
            self.content_types.pop(path, None)

    def sign_url(self, path: str, ttl_seconds: int, force_download: bool = False) -> str:
        url = f"https://blobs.test/{path}?ttl={ttl_seconds}"
        if force_download:
            url += "&download=1"
        return url


class FakeRasterizer:
    """
    Scripted rasterizer.

    Each call renders page_count pages of page_size bytes unless a size
    list was queued in `scripted`; `error` is raised instead when set.
    """

    def __init__(self, page_count: int = 3, page_size: int = 20_000, delay: float = 0.0) -> None:
        self.page_count = page_count
        self.page_size = page_size
        self.delay = delay
        self.error: Exception | None = None
        self.scripted: list[list[int]] = []
        self.calls = 0

    def rasterize(self, pdf_bytes: bytes, options: RasterOptions) -> list[RenderedPage]:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        sizes = self.scripted.pop(0) if self.scripted else [self.page_size] * self.page_count
        return [
            RenderedPage(
                page_number=page_number,
                content=bytes([page_number % 256]) * size,
                image_format=options.image_format,
            )
            for page_number, size in enumerate(sizes, start=1)
        ]


@pytest.fixture
async def db_engine(tmp_path):
    """
    File-backed SQLite engine with the full schema.

    A file (not :memory:) gives each session its own connection, so
    concurrent conversions see real transaction isolation.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'studyroom.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the application's."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(session_factory):
    """Single session for CRUD-level tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def page_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def source_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def rasterizer() -> FakeRasterizer:
    return FakeRasterizer()


@pytest.fixture
def conversion_settings() -> ConversionSettings:
    """Reference settings with fast polling for tests."""
    return ConversionSettings(
        job_poll_interval_seconds=0.01,
        job_wait_timeout_seconds=10.0,
        timeout_seconds=10.0,
    )


@pytest.fixture
def make_document(session_factory, source_store):
    """Factory that inserts a Document and (optionally) its source blob."""

    async def _make(
        content_type: str = "application/pdf",
        with_source: bool = True,
        title: str = "Week 1 lecture notes",
    ) -> DocumentModel:
        owner_id = uuid.uuid4()
        document_id = uuid.uuid4()
        storage_path = f"{owner_id}/{document_id}/original.pdf"
        document = DocumentModel(
            id=document_id,
            owner_id=owner_id,
            title=title,
            filename="week1.pdf",
            content_type=content_type,
            storage_path=storage_path,
            file_size_bytes=len(FAKE_PDF),
        )
        async with session_factory() as session:
            session.add(document)
            await session.commit()
        if with_source:
            source_store.objects[storage_path] = FAKE_PDF
        return document

    return _make


@pytest.fixture
async def document(make_document) -> DocumentModel:
    """A PDF document with its source uploaded."""
    return await make_document()


@pytest.fixture
def make_study_room_item(session_factory):
    """Factory that shelves a document for a member."""

    async def _make(document: DocumentModel) -> StudyRoomItemModel:
        item = StudyRoomItemModel(member_id=uuid.uuid4(), document_id=document.id)
        async with session_factory() as session:
            session.add(item)
            await session.commit()
        return item

    return _make


@pytest.fixture
def seed_pages(session_factory, page_store):
    """
    Insert page rows (and blobs) directly, bypassing the write path.

    Used to create expired, placeholder, and partial states.
    """

    async def _seed(
        document: DocumentModel,
        page_numbers: Sequence[int],
        total_pages: int | None = None,
        version: int = 1,
        expires_at: datetime | None = None,
        generation_method: GenerationMethod = GenerationMethod.STANDARD,
        size: int = 20_000,
        upload: bool = True,
    ) -> list[PageCacheModel]:
        total = total_pages if total_pages is not None else len(page_numbers)
        expiry = expires_at or utc_now() + timedelta(days=7)
        rows = []
        for page_number in page_numbers:
            path = f"{document.owner_id}/{document.id}/v{version}/page-{page_number}.jpg"
            if upload:
                page_store.objects[path] = b"\xff" * size
            rows.append(
                PageCacheModel(
                    document_id=document.id,
                    page_number=page_number,
                    total_pages=total,
                    blob_path=path,
                    file_size_bytes=size,
                    image_format=ImageFormat.JPEG,
                    quality_level=QualityLevel.STANDARD,
                    version=version,
                    generation_method=generation_method,
                    expires_at=expiry,
                )
            )
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()
        return rows

    return _seed


@pytest.fixture
def page_cache(session_factory, page_store) -> PageCacheService:
    return PageCacheService(
        session_factory=session_factory,
        page_store=page_store,
        signed_url_ttl_seconds=3600,
    )


@pytest.fixture
def orchestrator(
    session_factory,
    page_cache,
    source_store,
    rasterizer,
    conversion_settings,
) -> ConversionOrchestrator:
    return ConversionOrchestrator(
        session_factory=session_factory,
        page_cache=page_cache,
        source_store=source_store,
        rasterizer=rasterizer,
        settings=conversion_settings,
    )


@pytest.fixture
def dispatcher() -> MagicMock:
    """Stands in for the Celery dispatch call."""
    return MagicMock()


@pytest.fixture
def retrieval(session_factory, page_cache, orchestrator, dispatcher) -> PageRetrievalService:
    return PageRetrievalService(
        session_factory=session_factory,
        page_cache=page_cache,
        orchestrator=orchestrator,
        dispatcher=dispatcher,
    )


@pytest.fixture
def diagnostics(session_factory, page_store, source_store, conversion_settings) -> DiagnosticsService:
    return DiagnosticsService(
        session_factory=session_factory,
        page_store=page_store,
        source_store=source_store,
        settings=conversion_settings,
    )


@pytest.fixture
def job_service(session_factory, conversion_settings) -> ConversionJobService:
    return ConversionJobService(
        session_factory=session_factory,
        max_retries=conversion_settings.max_retries,
    )


@pytest.fixture
def maintenance(session_factory, orchestrator, conversion_settings) -> MaintenanceService:
    return MaintenanceService(
        session_factory=session_factory,
        orchestrator=orchestrator,
        settings=conversion_settings,
    )
