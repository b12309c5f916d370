"""Shared fixtures: a SQLite database in tmp_path and an offline-wired service."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from talknotes.api.main import create_app
from talknotes.db.session import Database
from talknotes.extraction.adapter import SessionOutputsAdapter
from talknotes.extraction.offline import OfflineGenerator
from talknotes.ingestion.audio import LocalAudioStore
from talknotes.ingestion.embeddings import HashedEmbeddingProvider
from talknotes.ingestion.models import TranscriptSegment
from talknotes.ingestion.pipeline import SessionPipeline
from talknotes.jobs import JobRunner, SessionLocks
from talknotes.pipeline_config import PipelineConfig
from talknotes.retrieval.generation import OfflineChatComposer
from talknotes.sessions import SessionService


@pytest.fixture
def database(tmp_path) -> Iterator[Database]:
    db = Database(f"sqlite:///{tmp_path / 'talknotes.db'}")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def runner() -> Iterator[JobRunner]:
    job_runner = JobRunner(max_workers=2)
    yield job_runner
    job_runner.shutdown()


@pytest.fixture
def audio_store(tmp_path) -> LocalAudioStore:
    return LocalAudioStore(tmp_path / "uploads")


@pytest.fixture
def offline_adapter() -> SessionOutputsAdapter:
    offline = OfflineGenerator()
    return SessionOutputsAdapter(transcriber=None, summarizer=offline, offline=offline)


@pytest.fixture
def pipeline(database, offline_adapter, audio_store, runner) -> SessionPipeline:
    return SessionPipeline(
        database=database,
        outputs=offline_adapter,
        embeddings=HashedEmbeddingProvider(),
        audio_store=audio_store,
        runner=runner,
        locks=SessionLocks(),
        config=PipelineConfig(),
    )


@pytest.fixture
def service(database, pipeline) -> SessionService:
    return SessionService(database, pipeline, OfflineChatComposer())


@pytest.fixture
def client(service) -> TestClient:
    return TestClient(create_app(service=service))


@pytest.fixture
def sample_segments() -> list[TranscriptSegment]:
    return [
        TranscriptSegment(text="Welcome to the talk about vector databases.", start_time=0, end_time=10),
        TranscriptSegment(text="Cosine similarity ranks chunks by angle.", start_time=10, end_time=20),
        TranscriptSegment(text="Hashed embeddings work offline.", start_time=20, end_time=30),
    ]
