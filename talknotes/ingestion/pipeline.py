"""Session processing: audio -> transcript + summary -> chunks + embeddings."""

from __future__ import annotations

import logging

from talknotes.db.models import decode_json_value
from talknotes.db.session import Database
from talknotes.errors import InvalidRequestError
from talknotes.extraction.adapter import SessionOutputsAdapter
from talknotes.ingestion.audio import LocalAudioStore
from talknotes.ingestion.chunking import chunk_segments
from talknotes.ingestion.embeddings import EmbeddingProvider
from talknotes.ingestion.models import IndexResult
from talknotes.ingestion.status import SessionStatus
from talknotes.ingestion.storage import (
    count_chunks,
    latest_audio_recording,
    list_segments,
    replace_chunks,
    replace_resources,
    replace_segments,
    require_session,
    set_session_status,
    upsert_summary,
)
from talknotes.jobs import JobRunner, SessionLocks
from talknotes.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)


class SessionPipeline:
    """Orchestrates one session's processing run and its transcript index.

    A run is strictly sequential.  Its derived artifacts (segments, summary,
    resources, status) are written in one transaction; chunking happens
    afterwards as a separate background job.
    """

    def __init__(
        self,
        database: Database,
        outputs: SessionOutputsAdapter,
        embeddings: EmbeddingProvider,
        audio_store: LocalAudioStore,
        runner: JobRunner,
        locks: SessionLocks | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.database = database
        self.outputs = outputs
        self.embeddings = embeddings
        self.audio_store = audio_store
        self.runner = runner
        self.locks = locks or SessionLocks()
        self.config = config or PipelineConfig()

    def run(self, session_id: str) -> None:
        """Process the session's most recent audio.

        Any failure marks the session ``failed`` in its own transaction and is
        re-raised.  On success the session is ``ready`` and a reindex job is
        queued.
        """
        try:
            with self.database.session() as db:
                record = require_session(db, session_id)
                recording = latest_audio_recording(db, session_id)
                if recording is None:
                    raise InvalidRequestError(f"Session {session_id} has no audio recording")
                title = record.title
                topic_context = record.topic_context
                speakers = decode_json_value(record.speaker_metadata, [])
                file_url = recording.file_url
                duration = recording.duration_seconds or record.duration_seconds

            audio_path = self.audio_store.resolve(file_url)
            if audio_path is None:
                logger.info("Audio %s for session %s is not a local file", file_url, session_id)

            outputs = self.outputs.from_audio(
                session_id,
                audio_path,
                duration,
                title=title,
                speakers=speakers or None,
                topic_context=topic_context,
            )

            with self.database.transaction() as db:
                replace_segments(db, session_id, outputs.segments)
                upsert_summary(db, session_id, outputs.summary)
                replace_resources(db, session_id, outputs.resources)
                record = set_session_status(db, session_id, SessionStatus.READY)
                record.transcript_language = outputs.transcript_language or record.transcript_language
                record.summary_language = outputs.summary.language or record.summary_language
        except Exception:
            logger.error("Processing failed for session %s; marking it failed", session_id)
            self._mark_failed(session_id)
            raise

        logger.info(
            "Session %s ready: %d segments, %d resources",
            session_id,
            len(outputs.segments),
            len(outputs.resources),
        )
        self.runner.submit(
            "reindex",
            session_id,
            self.reindex,
            session_id,
            on_error=lambda exc: logger.warning(
                "Reindex after processing failed for session %s; search stays degraded until the next reindex",
                session_id,
            ),
        )

    def _mark_failed(self, session_id: str) -> None:
        try:
            with self.database.transaction() as db:
                set_session_status(db, session_id, SessionStatus.FAILED)
        except Exception:
            logger.exception("Could not mark session %s as failed", session_id)

    def reindex(self, session_id: str) -> IndexResult:
        """Re-chunk and re-embed the current transcript, replacing all chunks.

        Reindexes of one session are serialized by its lock; each one is a
        full replace, so the last one to commit wins.
        """
        with self.database.session() as db:
            require_session(db, session_id)

        with self.locks.hold(session_id):
            with self.database.session() as db:
                segments = list_segments(db, session_id)

            chunks = chunk_segments(
                segments,
                max_tokens=self.config.max_chunk_tokens,
                min_tokens=self.config.min_chunk_tokens,
            )
            result = self.embeddings.embed([c.content for c in chunks])
            vectors: list[list[float] | None] = list(result.vectors)
            if len(vectors) != len(chunks):
                logger.warning(
                    "Got %d vectors for %d chunks in session %s; storing chunks unembedded",
                    len(vectors),
                    len(chunks),
                    session_id,
                )
                vectors = [None] * len(chunks)

            embedding_model = result.model if chunks else None
            with self.database.transaction() as db:
                replace_chunks(db, session_id, list(zip(chunks, vectors)), embedding_model)

        logger.info("Indexed %d chunks for session %s (model=%s)", len(chunks), session_id, embedding_model)
        return IndexResult(chunks_indexed=len(chunks), embedding_model=embedding_model)

    def ensure_indexed(self, session_id: str) -> int:
        """Index the session if it has no chunks yet; return the chunk count."""
        with self.database.session() as db:
            require_session(db, session_id)

        with self.locks.hold(session_id):
            with self.database.session() as db:
                existing = count_chunks(db, session_id)
            if existing:
                return existing
            return self.reindex(session_id).chunks_indexed
