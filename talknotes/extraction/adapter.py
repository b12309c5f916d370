"""Turn a session's audio into transcript segments, a summary and resources.

The capable transcriber and summarizer are chosen once, when the adapter is
built; anything not configured is served by :class:`OfflineGenerator`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from talknotes.config import Settings
from talknotes.extraction.models import SessionOutputs, SummaryResult
from talknotes.extraction.offline import OfflineGenerator
from talknotes.extraction.summarizer import ClaudeSummarizer, Summarizer
from talknotes.extraction.transcriber import AssemblyAITranscriber, Transcriber
from talknotes.ingestion.models import TranscriptSegment

logger = logging.getLogger(__name__)


def transcript_text(segments: list[TranscriptSegment]) -> str:
    return " ".join(s.text for s in segments if s.text.strip())


class SessionOutputsAdapter:
    def __init__(
        self,
        transcriber: Transcriber | None,
        summarizer: Summarizer,
        offline: OfflineGenerator | None = None,
    ) -> None:
        self.transcriber = transcriber
        self.summarizer = summarizer
        self.offline = offline or OfflineGenerator()

    def from_audio(
        self,
        session_id: str,
        audio_path: Path | None,
        duration_seconds: float | None = None,
        *,
        title: str | None = None,
        speakers: list[dict[str, Any]] | None = None,
        topic_context: str | None = None,
    ) -> SessionOutputs:
        """Transcribe and summarize one session.

        Falls back to the offline transcript when no transcriber is
        configured or *audio_path* is ``None``.  Upstream errors propagate.
        """
        if self.transcriber is None or audio_path is None:
            logger.info("Using offline transcript for session %s", session_id)
            transcription = self.offline.transcribe(audio_path, duration_seconds)
        else:
            transcription = self.transcriber.transcribe(audio_path, duration_seconds)

        result = self.summarizer.summarize(
            transcription.text or transcript_text(transcription.segments),
            title=title,
            speakers=speakers,
            topic_context=topic_context,
            language=transcription.language,
        )
        return SessionOutputs(
            segments=transcription.segments,
            summary=result.summary,
            resources=result.resources,
            transcript_language=transcription.language,
        )

    def resummarize(
        self,
        segments: list[TranscriptSegment],
        *,
        title: str | None = None,
        speakers: list[dict[str, Any]] | None = None,
        topic_context: str | None = None,
        language: str | None = None,
    ) -> SummaryResult:
        return self.summarizer.summarize(
            transcript_text(segments),
            title=title,
            speakers=speakers,
            topic_context=topic_context,
            language=language,
        )


def build_outputs_adapter(settings: Settings) -> SessionOutputsAdapter:
    offline = OfflineGenerator()
    transcriber: Transcriber | None = None
    if settings.assemblyai_api_key:
        transcriber = AssemblyAITranscriber(
            api_key=settings.assemblyai_api_key,
            timeout=settings.transcription_timeout_seconds,
            poll_interval=settings.transcription_poll_interval_seconds,
        )
    summarizer: Summarizer = offline
    if settings.anthropic_api_key:
        summarizer = ClaudeSummarizer(
            api_key=settings.anthropic_api_key,
            model=settings.llm_model,
            timeout=settings.llm_timeout_seconds,
        )
    logger.info(
        "Outputs adapter: transcriber=%s summarizer=%s",
        type(transcriber).__name__ if transcriber else "offline",
        type(summarizer).__name__,
    )
    return SessionOutputsAdapter(transcriber, summarizer, offline)
