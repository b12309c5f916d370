"""Session operations shared by the API: create, process, summarize, chat."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from talknotes.config import Settings
from talknotes.db.models import ChatMessageRecord, TalkSession, decode_json_value, utcnow
from talknotes.db.session import Database
from talknotes.errors import InvalidRequestError, NotReadyError
from talknotes.extraction.adapter import SessionOutputsAdapter, build_outputs_adapter
from talknotes.extraction.models import Resource, SessionSummary
from talknotes.ingestion import storage
from talknotes.ingestion.audio import LocalAudioStore
from talknotes.ingestion.embeddings import EmbeddingProvider, get_embedding_provider
from talknotes.ingestion.models import IndexResult, TranscriptSegment
from talknotes.ingestion.pipeline import SessionPipeline
from talknotes.ingestion.status import SessionStatus, ensure_transition
from talknotes.jobs import JobRunner, SessionLocks
from talknotes.pipeline_config import PipelineConfig
from talknotes.retrieval.generation import (
    ChatComposer,
    ClaudeChatComposer,
    OfflineChatComposer,
    SessionContext,
    answer_question,
    is_low_confidence,
)
from talknotes.retrieval.reading import ExternalLink, ExternalReadingSearch
from talknotes.retrieval.search import retrieve_relevant_chunks

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Session"
NOT_DISCUSSED_PREFIX = "Not discussed in the session; "


@dataclass
class SessionInfo:
    id: str
    title: str
    status: str
    started_at: datetime
    ended_at: datetime | None = None
    duration_seconds: int | None = None
    transcript_language: str | None = None
    summary_language: str | None = None
    topic_context: str | None = None
    speaker_metadata: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: TalkSession) -> SessionInfo:
        return cls(
            id=record.id,
            title=record.title,
            status=record.status,
            started_at=record.started_at,
            ended_at=record.ended_at,
            duration_seconds=record.duration_seconds,
            transcript_language=record.transcript_language,
            summary_language=record.summary_language,
            topic_context=record.topic_context,
            speaker_metadata=decode_json_value(record.speaker_metadata, []),
        )


@dataclass
class ChatMessage:
    id: int
    role: str
    content: str
    citations: list[dict[str, Any]]
    external_links: list[dict[str, Any]]
    language: str | None
    created_at: datetime

    @classmethod
    def from_record(cls, record: ChatMessageRecord) -> ChatMessage:
        return cls(
            id=record.id,
            role=record.role,
            content=record.content,
            citations=decode_json_value(record.citations, []),
            external_links=decode_json_value(record.external_links, []),
            language=record.language,
            created_at=record.created_at,
        )


@dataclass
class SessionDetail:
    session: SessionInfo
    audio_url: str | None
    transcript: list[TranscriptSegment]
    summary: SessionSummary | None
    resources: list[Resource]
    chat_messages: list[ChatMessage]


@dataclass
class StudySession:
    id: str
    title: str
    status: str
    started_at: datetime
    duration_seconds: int | None
    summary: str | None
    resource_count: int


@dataclass
class ChatResult:
    assistant_message: str
    citations: list[dict[str, Any]]
    external_links: list[dict[str, Any]]
    top_score: float
    language: str


class SessionService:
    """Entry point for every session operation.

    All collaborators are injected; :func:`build_session_service` is the one
    place that picks concrete implementations from settings.
    """

    def __init__(
        self,
        database: Database,
        pipeline: SessionPipeline,
        composer: ChatComposer,
        reading: ExternalReadingSearch | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.database = database
        self.pipeline = pipeline
        self.composer = composer
        self.reading = reading or ExternalReadingSearch()
        self.config = config or pipeline.config

    @property
    def outputs(self) -> SessionOutputsAdapter:
        return self.pipeline.outputs

    @property
    def embeddings(self) -> EmbeddingProvider:
        return self.pipeline.embeddings

    # -- sessions ----------------------------------------------------------

    def create_session(
        self,
        title: str | None = None,
        topic_context: str | None = None,
        speakers: list[dict[str, Any]] | None = None,
    ) -> SessionInfo:
        with self.database.transaction() as db:
            record = storage.create_session(
                db,
                title=(title or "").strip() or DEFAULT_TITLE,
                topic_context=topic_context,
                speaker_metadata=speakers,
            )
            info = SessionInfo.from_record(record)
        logger.info("Created session %s", info.id)
        return info

    def list_sessions(self, status: SessionStatus | None = None) -> list[SessionInfo]:
        with self.database.session() as db:
            return [SessionInfo.from_record(r) for r in storage.list_sessions(db, status)]

    def list_study_sessions(self) -> list[StudySession]:
        """Ready sessions with their short summary and resource count."""
        with self.database.session() as db:
            results: list[StudySession] = []
            for record in storage.list_sessions(db, SessionStatus.READY):
                summary = storage.get_summary(db, record.id)
                results.append(
                    StudySession(
                        id=record.id,
                        title=record.title,
                        status=record.status,
                        started_at=record.started_at,
                        duration_seconds=record.duration_seconds,
                        summary=summary.short_summary if summary else None,
                        resource_count=storage.count_resources(db, record.id),
                    )
                )
            return results

    def get_detail(self, session_id: str) -> SessionDetail:
        with self.database.session() as db:
            record = storage.require_session(db, session_id)
            audio = storage.latest_audio_recording(db, session_id)
            return SessionDetail(
                session=SessionInfo.from_record(record),
                audio_url=audio.file_url if audio else None,
                transcript=storage.list_segments(db, session_id),
                summary=storage.get_summary(db, session_id),
                resources=storage.list_resources(db, session_id),
                chat_messages=[ChatMessage.from_record(m) for m in storage.list_chat_messages(db, session_id)],
            )

    # -- processing --------------------------------------------------------

    def start_processing(
        self,
        session_id: str,
        *,
        file_url: str | None = None,
        audio_base64: str | None = None,
        file_name: str | None = None,
        mime_type: str | None = None,
        duration_seconds: int | None = None,
    ) -> SessionInfo:
        """Attach audio, move the session to ``processing`` and queue the run.

        Returns as soon as the run is queued; callers poll the session status.

        Raises:
            InvalidRequestError: If neither *file_url* nor *audio_base64* is given.
            NotFoundError: If the session does not exist.
            InvalidTransitionError: If the session is already processing.
        """
        if not file_url and not audio_base64:
            raise InvalidRequestError("file_url or audio_base64 required")

        with self.database.session() as db:
            record = storage.require_session(db, session_id)
            ensure_transition(record.status, SessionStatus.PROCESSING)

        stored_url = file_url
        if audio_base64:
            stored_url = self.pipeline.audio_store.save_base64(session_id, audio_base64, file_name, mime_type)

        try:
            with self.database.transaction() as db:
                storage.add_audio_recording(db, session_id, stored_url, duration_seconds)
                record = storage.set_session_status(db, session_id, SessionStatus.PROCESSING)
                record.ended_at = utcnow()
                if duration_seconds is not None:
                    record.duration_seconds = duration_seconds
                info = SessionInfo.from_record(record)
        except Exception:
            if audio_base64:
                self.pipeline.audio_store.discard(stored_url)
            raise

        self.pipeline.runner.submit("process", session_id, self.pipeline.run, session_id)
        logger.info("Audio accepted for session %s; processing queued", session_id)
        return info

    def recover_interrupted(self) -> list[str]:
        """Fail sessions left in ``processing`` by a previous process.

        Call once at startup, before any job is submitted.  Recovered
        sessions can be re-attached and processed again.
        """
        with self.database.transaction() as db:
            session_ids = storage.fail_interrupted_sessions(db)
        for session_id in session_ids:
            logger.warning("Session %s was interrupted while processing; marked failed", session_id)
        return session_ids

    def reindex(self, session_id: str) -> IndexResult:
        return self.pipeline.reindex(session_id)

    def resummarize(
        self,
        session_id: str,
        speakers: list[dict[str, Any]] | None = None,
        topic_context: str | None = None,
        language: str | None = None,
    ) -> SessionSummary:
        """Regenerate the summary from the stored transcript.

        Supplied speakers and topic context are saved on the session.  The
        session status is left alone.

        Raises:
            NotFoundError: If the session does not exist.
            NotReadyError: If the session has no transcript yet.
        """
        with self.database.session() as db:
            record = storage.require_session(db, session_id)
            title = record.title
            segments = storage.list_segments(db, session_id)
        if not segments:
            raise NotReadyError("Transcript not ready yet")

        result = self.outputs.resummarize(
            segments,
            title=title,
            speakers=speakers,
            topic_context=topic_context,
            language=language,
        )
        summary = result.summary

        with self.database.transaction() as db:
            record = storage.require_session(db, session_id)
            if speakers is not None:
                record.speaker_metadata = speakers
            if topic_context is not None:
                record.topic_context = topic_context
            record.summary_language = summary.language or language or record.summary_language
            storage.upsert_summary(db, session_id, summary)
        logger.info("Resummarized session %s", session_id)
        return summary

    # -- chat --------------------------------------------------------------

    def chat(
        self,
        session_id: str,
        question: str,
        language: str | None = None,
        include_external_reading: bool = False,
    ) -> ChatResult:
        """Answer a question from the session transcript and record the exchange.

        Both the question and the answer (including the fixed non-answer) are
        appended to the chat history.
        """
        question = (question or "").strip()
        if not question:
            raise InvalidRequestError("message required")

        with self.database.session() as db:
            record = storage.require_session(db, session_id)
            session = SessionInfo.from_record(record)
            history = storage.recent_chat_history(db, session_id, self.config.chat_history_limit)

        self.pipeline.ensure_indexed(session_id)
        with self.database.session() as db:
            chunks = storage.list_chunks(db, session_id)

        retrieval = retrieve_relevant_chunks(
            chunks, question, history, self.embeddings, limit=self.config.retrieval_limit
        )
        response_language = language or session.summary_language or session.transcript_language or "en"
        context = SessionContext(
            title=session.title,
            topic_context=session.topic_context,
            speaker_metadata=session.speaker_metadata or None,
            transcript_language=session.transcript_language,
            language=response_language,
        )
        answer = answer_question(
            question, context, history, retrieval, self.composer, self.config.confidence_floor
        )

        links: list[ExternalLink] = []
        if include_external_reading:
            links = self.reading.search(
                f"{question} {session.title or ''}".strip(),
                title=session.title,
                topic_context=session.topic_context,
            )
        if links and is_low_confidence(retrieval, self.config.confidence_floor):
            for link in links:
                link.note = f"{NOT_DISCUSSED_PREFIX}{link.note or 'relevant background reading.'}"

        citations = [c.to_dict() for c in answer.citations]
        external_links = [link.to_dict() for link in links]
        with self.database.transaction() as db:
            storage.append_chat_message(db, session_id, "user", question, language=response_language)
            storage.append_chat_message(
                db,
                session_id,
                "assistant",
                answer.answer,
                citations=citations,
                external_links=external_links,
                language=response_language,
            )

        return ChatResult(
            assistant_message=answer.answer,
            citations=citations,
            external_links=external_links,
            top_score=retrieval.top_score,
            language=response_language,
        )

    def close(self) -> None:
        self.pipeline.runner.shutdown()
        self.database.dispose()


def build_session_service(settings: Settings) -> SessionService:
    """Wire every component from *settings*. Providers are chosen here, once."""
    database = Database(settings.database_url)
    database.create_all()

    config = PipelineConfig()
    pipeline = SessionPipeline(
        database=database,
        outputs=build_outputs_adapter(settings),
        embeddings=get_embedding_provider(settings),
        audio_store=LocalAudioStore(settings.audio_upload_dir),
        runner=JobRunner(settings.max_background_workers),
        locks=SessionLocks(),
        config=config,
    )

    composer: ChatComposer
    if settings.anthropic_api_key:
        composer = ClaudeChatComposer(
            api_key=settings.anthropic_api_key,
            model=settings.llm_model,
            timeout=settings.llm_timeout_seconds,
        )
    else:
        composer = OfflineChatComposer()

    reading = ExternalReadingSearch(
        api_key=settings.google_search_api_key,
        cx=settings.google_search_cx,
        max_results=settings.google_search_max_results,
        timeout=settings.search_timeout_seconds,
    )
    service = SessionService(database, pipeline, composer, reading, config)
    service.recover_interrupted()
    logger.info("Session service ready (composer=%s)", type(composer).__name__)
    return service
