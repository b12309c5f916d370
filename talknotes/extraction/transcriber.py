"""AssemblyAI-backed transcription of stored session audio."""

from __future__ import annotations

import logging
import math
import time
from pathlib import Path
from typing import Any, Protocol

import assemblyai as aai  # type: ignore[import-untyped]

from talknotes.errors import UpstreamServiceError
from talknotes.extraction.models import Transcription
from talknotes.ingestion.models import TranscriptSegment

logger = logging.getLogger(__name__)

# Fallback spacing (seconds) for utterances that arrive without timestamps
_FALLBACK_SEGMENT_SECONDS = 15


class Transcriber(Protocol):
    def transcribe(self, audio_path: Path, duration_seconds: float | None = None) -> Transcription: ...


def build_segments(
    utterances: list[dict[str, Any]],
    full_text: str,
    duration_seconds: float | None = None,
) -> list[TranscriptSegment]:
    """Turn AssemblyAI utterances (times in ms) into whole-second segments.

    Starts are floored and ends ceiled; empty or inverted segments are
    dropped.  With no utterances at all, the full text becomes one segment
    spanning ``[0, duration]``.
    """
    if not utterances:
        if not full_text.strip():
            return []
        utterances = [{"text": full_text, "start": 0, "end": (duration_seconds or 0) * 1000}]

    segments: list[TranscriptSegment] = []
    for idx, utt in enumerate(utterances):
        text = str(utt.get("text") or "").strip()
        start_ms = utt.get("start")
        end_ms = utt.get("end")
        start = start_ms / 1000.0 if start_ms else idx * _FALLBACK_SEGMENT_SECONDS
        end = end_ms / 1000.0 if end_ms else idx * _FALLBACK_SEGMENT_SECONDS + _FALLBACK_SEGMENT_SECONDS
        start = max(0, math.floor(start))
        end = max(0, math.ceil(end))
        if not text or end < start:
            continue
        segments.append(
            TranscriptSegment(
                text=text,
                start_time=float(start),
                end_time=float(end),
                speaker=utt.get("speaker"),
            )
        )
    return segments


class AssemblyAITranscriber:
    """Transcribe local audio files via the AssemblyAI SDK.

    The transcript is submitted and then polled until it completes, errors,
    or *timeout* seconds pass.  Any of those failures raise
    :class:`UpstreamServiceError` so the processing run is marked failed.
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 900.0,
        poll_interval: float = 3.0,
        transcriber: Any | None = None,
    ) -> None:
        aai.settings.api_key = api_key
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._transcriber = transcriber or aai.Transcriber()
        # speaker_labels enables diarization; language_detection fills in
        # json_response["language_code"] for the session's transcript language.
        self._config = aai.TranscriptionConfig(
            speech_models=["universal-3-pro"],
            speaker_labels=True,
            language_detection=True,
        )

    def transcribe(self, audio_path: Path, duration_seconds: float | None = None) -> Transcription:
        try:
            transcript = self._transcriber.submit(str(audio_path), config=self._config)
            deadline = time.monotonic() + self._timeout
            while transcript.status not in (aai.TranscriptStatus.completed, aai.TranscriptStatus.error):
                if time.monotonic() >= deadline:
                    msg = f"Transcription timed out after {self._timeout:.0f}s"
                    raise UpstreamServiceError(msg)
                time.sleep(self._poll_interval)
                transcript = aai.Transcript.get_by_id(transcript.id)
        except UpstreamServiceError:
            raise
        except Exception as exc:
            # Infrastructure error, e.g. an invalid API key or a provider outage.
            raise UpstreamServiceError(f"Transcription service unavailable: {exc}") from exc

        if transcript.status == aai.TranscriptStatus.error:
            raise UpstreamServiceError(f"Transcription failed: {transcript.error}")

        text = transcript.text or ""
        utterances = [
            {"speaker": u.speaker, "text": u.text, "start": u.start, "end": u.end}
            for u in (transcript.utterances or [])
        ]
        response = getattr(transcript, "json_response", None) or {}
        language = response.get("language_code") if isinstance(response, dict) else None

        segments = build_segments(utterances, text, duration_seconds)
        logger.info("Transcribed %s into %d segments (language=%s)", audio_path.name, len(segments), language)
        return Transcription(
            text=text or " ".join(s.text for s in segments),
            language=language,
            segments=segments,
        )
