"""Repository helpers for sessions, transcripts, summaries, chunks and chat.

Every helper takes an open SQLAlchemy ``Session``; the caller decides the
transaction boundary via :class:`talknotes.db.session.Database`.  Segment,
resource and chunk sets are only ever written as delete-all/insert-all.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from talknotes.db.models import (
    AudioRecording,
    ChatMessageRecord,
    ResourceRecord,
    SummaryRecord,
    TalkSession,
    TranscriptChunkRecord,
    TranscriptSegmentRecord,
    decode_json_value,
    decode_vector,
    utcnow,
)
from talknotes.errors import NotFoundError
from talknotes.extraction.models import Resource, SessionSummary
from talknotes.ingestion.models import Chunk, StoredChunk, TranscriptSegment
from talknotes.ingestion.status import SessionStatus, ensure_transition


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


def require_session(db: Session, session_id: str) -> TalkSession:
    """Return the session row or raise :class:`NotFoundError`."""
    record = db.get(TalkSession, session_id)
    if record is None:
        raise NotFoundError(f"Session {session_id} not found")
    return record


def create_session(
    db: Session,
    title: str,
    topic_context: str | None = None,
    speaker_metadata: list[dict[str, Any]] | None = None,
    source_session_id: str | None = None,
) -> TalkSession:
    record = TalkSession(
        title=title,
        status=SessionStatus.RECORDING.value,
        started_at=utcnow(),
        topic_context=topic_context,
        speaker_metadata=speaker_metadata,
        source_session_id=source_session_id,
    )
    db.add(record)
    db.flush()
    return record


def list_sessions(db: Session, status: SessionStatus | None = None) -> list[TalkSession]:
    stmt = select(TalkSession).order_by(TalkSession.started_at.desc())
    if status is not None:
        stmt = stmt.where(TalkSession.status == status.value)
    return list(db.scalars(stmt))


def set_session_status(db: Session, session_id: str, status: SessionStatus) -> TalkSession:
    """Move a session to *status*, enforcing the lifecycle."""
    record = require_session(db, session_id)
    record.status = ensure_transition(record.status, status).value
    return record


def fail_interrupted_sessions(db: Session) -> list[str]:
    """Move every session still marked processing to failed; return their ids.

    Runs live in an in-process pool, so at startup no run can still own them.
    """
    records = list_sessions(db, SessionStatus.PROCESSING)
    for record in records:
        record.status = ensure_transition(record.status, SessionStatus.FAILED).value
    return [r.id for r in records]


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------


def add_audio_recording(
    db: Session,
    session_id: str,
    file_url: str,
    duration_seconds: int | None = None,
) -> AudioRecording:
    recording = AudioRecording(
        session_id=session_id,
        file_url=file_url,
        duration_seconds=duration_seconds,
        created_at=utcnow(),
    )
    db.add(recording)
    db.flush()
    return recording


def latest_audio_recording(db: Session, session_id: str) -> AudioRecording | None:
    stmt = (
        select(AudioRecording)
        .where(AudioRecording.session_id == session_id)
        .order_by(AudioRecording.created_at.desc(), AudioRecording.id.desc())
        .limit(1)
    )
    return db.scalars(stmt).first()


# ---------------------------------------------------------------------------
# Transcript segments
# ---------------------------------------------------------------------------


def replace_segments(db: Session, session_id: str, segments: Sequence[TranscriptSegment]) -> int:
    """Delete every segment of the session and insert *segments*."""
    db.execute(delete(TranscriptSegmentRecord).where(TranscriptSegmentRecord.session_id == session_id))
    db.add_all(
        TranscriptSegmentRecord(
            session_id=session_id,
            start_time_seconds=seg.start_time,
            end_time_seconds=seg.end_time,
            text=seg.text,
            speaker=seg.speaker,
        )
        for seg in segments
    )
    db.flush()
    return len(segments)


def list_segments(db: Session, session_id: str) -> list[TranscriptSegment]:
    stmt = (
        select(TranscriptSegmentRecord)
        .where(TranscriptSegmentRecord.session_id == session_id)
        .order_by(TranscriptSegmentRecord.start_time_seconds, TranscriptSegmentRecord.id)
    )
    return [
        TranscriptSegment(
            text=row.text,
            start_time=row.start_time_seconds,
            end_time=row.end_time_seconds,
            speaker=row.speaker,
        )
        for row in db.scalars(stmt)
    ]


# ---------------------------------------------------------------------------
# Summary and resources
# ---------------------------------------------------------------------------


_DIALECT_INSERTS = {"sqlite": sqlite_insert, "postgresql": postgresql_insert}


def upsert_summary(db: Session, session_id: str, summary: SessionSummary) -> SummaryRecord:
    """Insert the session's summary or overwrite the existing one in one statement."""
    dialect = db.get_bind().dialect.name
    insert = _DIALECT_INSERTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Summary upsert is not supported on {dialect}")

    values = {
        "short_summary": summary.short_summary,
        "detailed_summary": summary.detailed_summary,
        "key_points": list(summary.key_points),
        "action_items": list(summary.action_items),
        "highlights": list(summary.highlights),
        "language": summary.language,
        "updated_at": utcnow(),
    }
    stmt = insert(SummaryRecord).values(session_id=session_id, **values)
    db.execute(stmt.on_conflict_do_update(index_elements=[SummaryRecord.session_id], set_=values))
    return db.get(SummaryRecord, session_id, populate_existing=True)


def get_summary(db: Session, session_id: str) -> SessionSummary | None:
    record = db.get(SummaryRecord, session_id)
    if record is None:
        return None
    return SessionSummary(
        short_summary=record.short_summary,
        detailed_summary=record.detailed_summary,
        key_points=decode_json_value(record.key_points, []),
        action_items=decode_json_value(record.action_items, []),
        highlights=decode_json_value(record.highlights, []),
        language=record.language,
    )


def replace_resources(db: Session, session_id: str, resources: Sequence[Resource]) -> int:
    db.execute(delete(ResourceRecord).where(ResourceRecord.session_id == session_id))
    db.add_all(
        ResourceRecord(
            session_id=session_id,
            title=r.title,
            url=r.url,
            source_name=r.source_name,
            description=r.description,
            created_at=utcnow(),
        )
        for r in resources
    )
    db.flush()
    return len(resources)


def list_resources(db: Session, session_id: str) -> list[Resource]:
    stmt = (
        select(ResourceRecord)
        .where(ResourceRecord.session_id == session_id)
        .order_by(ResourceRecord.id)
    )
    return [
        Resource(
            title=row.title,
            url=row.url,
            source_name=row.source_name or "",
            description=row.description or "",
        )
        for row in db.scalars(stmt)
    ]


def count_resources(db: Session, session_id: str) -> int:
    stmt = select(func.count()).select_from(ResourceRecord).where(ResourceRecord.session_id == session_id)
    return int(db.scalar(stmt) or 0)


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------


def replace_chunks(
    db: Session,
    session_id: str,
    chunks_with_embeddings: Sequence[tuple[Chunk, list[float] | None]],
    embedding_model: str | None,
) -> int:
    """Replace the session's whole chunk set.

    All rows share one *embedding_model*; a chunk without a vector is stored
    with a null embedding.
    """
    db.execute(delete(TranscriptChunkRecord).where(TranscriptChunkRecord.session_id == session_id))
    db.add_all(
        TranscriptChunkRecord(
            session_id=session_id,
            chunk_index=chunk.chunk_index,
            text=chunk.content,
            start_time_seconds=chunk.start_time,
            end_time_seconds=chunk.end_time,
            speaker=chunk.speaker,
            embedding=embedding,
            embedding_model=embedding_model,
            created_at=utcnow(),
        )
        for chunk, embedding in chunks_with_embeddings
    )
    db.flush()
    return len(chunks_with_embeddings)


def list_chunks(db: Session, session_id: str) -> list[StoredChunk]:
    stmt = (
        select(TranscriptChunkRecord)
        .where(TranscriptChunkRecord.session_id == session_id)
        .order_by(TranscriptChunkRecord.chunk_index)
    )
    return [
        StoredChunk(
            id=row.id,
            session_id=row.session_id,
            content=row.text,
            start_time=row.start_time_seconds,
            end_time=row.end_time_seconds,
            speaker=row.speaker,
            embedding=decode_vector(row.embedding),
            embedding_model=row.embedding_model,
            chunk_index=row.chunk_index,
        )
        for row in db.scalars(stmt)
    ]


def count_chunks(db: Session, session_id: str) -> int:
    stmt = (
        select(func.count())
        .select_from(TranscriptChunkRecord)
        .where(TranscriptChunkRecord.session_id == session_id)
    )
    return int(db.scalar(stmt) or 0)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


def append_chat_message(
    db: Session,
    session_id: str,
    role: str,
    content: str,
    citations: list[dict[str, Any]] | None = None,
    external_links: list[dict[str, Any]] | None = None,
    language: str | None = None,
    created_at: datetime | None = None,
) -> ChatMessageRecord:
    record = ChatMessageRecord(
        session_id=session_id,
        role=role,
        content=content,
        citations=citations,
        external_links=external_links,
        language=language,
        created_at=created_at or utcnow(),
    )
    db.add(record)
    db.flush()
    return record


def list_chat_messages(db: Session, session_id: str) -> list[ChatMessageRecord]:
    stmt = (
        select(ChatMessageRecord)
        .where(ChatMessageRecord.session_id == session_id)
        .order_by(ChatMessageRecord.created_at, ChatMessageRecord.id)
    )
    return list(db.scalars(stmt))


def recent_chat_history(db: Session, session_id: str, limit: int = 6) -> list[tuple[str, str]]:
    """Return the last *limit* ``(role, content)`` pairs, oldest first."""
    stmt = (
        select(ChatMessageRecord.role, ChatMessageRecord.content)
        .where(ChatMessageRecord.session_id == session_id)
        .order_by(ChatMessageRecord.created_at.desc(), ChatMessageRecord.id.desc())
        .limit(limit)
    )
    rows = [(role, content) for role, content in db.execute(stmt)]
    rows.reverse()
    return rows
