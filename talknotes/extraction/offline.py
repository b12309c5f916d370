"""Deterministic stand-ins for transcription and summarization.

Used when no AssemblyAI or Anthropic key is configured, or when a session's
audio reference cannot be resolved to a local file.  Output depends only on
the inputs, which keeps tests and demos reproducible.
"""

from __future__ import annotations

from typing import Any

from talknotes.extraction.models import Resource, SessionSummary, SummaryResult, Transcription
from talknotes.ingestion.models import TranscriptSegment

SEGMENT_SPACING_SECONDS = 45
SEGMENT_LENGTH_SECONDS = 40

_DEMO_TRANSCRIPT = (
    "Welcome to this session, where we look at capturing talks without losing context.",
    "Recording the audio alongside the slides lets you revisit key moments quickly.",
    "A study hub surfaces the key takeaways and related resources after the talk.",
    "Next steps include better summaries and smarter resource discovery.",
)

_DEMO_SUMMARY = (
    "The speaker outlined a practical path for AI-assisted note taking and study "
    "workflows, focusing on capturing talk audio with minimal friction."
)

_DEMO_RESOURCES = (
    Resource(
        title="Designing low-friction capture flows",
        url="https://example.com/designing-capture-flows",
        source_name="Product Patterns",
        description="Patterns for quick capture with progressive disclosure.",
    ),
    Resource(
        title="Study techniques for conference talks",
        url="https://example.com/conference-study-techniques",
        source_name="Learning Guide",
        description="Turning talk notes into spaced-repetition study material.",
    ),
)


def _speaker_note(speakers: list[dict[str, Any]] | None) -> str:
    names: list[str] = []
    for speaker in speakers or []:
        name = str(speaker.get("name") or "").strip()
        if not name:
            continue
        role = str(speaker.get("role") or "").strip()
        names.append(f"{name} ({role})" if role else name)
    return f"Speakers include {', '.join(names)}. " if names else ""


class OfflineGenerator:
    """Offline transcriber and summarizer in one object."""

    def transcript_segments(self) -> list[TranscriptSegment]:
        return [
            TranscriptSegment(
                text=text,
                start_time=float(idx * SEGMENT_SPACING_SECONDS),
                end_time=float(idx * SEGMENT_SPACING_SECONDS + SEGMENT_LENGTH_SECONDS),
            )
            for idx, text in enumerate(_DEMO_TRANSCRIPT)
        ]

    def transcribe(self, audio_path: Any = None, duration_seconds: float | None = None) -> Transcription:
        segments = self.transcript_segments()
        return Transcription(
            text=" ".join(s.text for s in segments),
            language="en",
            segments=segments,
        )

    def summarize(
        self,
        transcript_text: str,
        *,
        title: str | None = None,
        speakers: list[dict[str, Any]] | None = None,
        topic_context: str | None = None,
        language: str | None = None,
    ) -> SummaryResult:
        context_note = f"Session context: {topic_context}. " if topic_context else ""
        summary = SessionSummary(
            short_summary=f"{_speaker_note(speakers)}{context_note}{_DEMO_SUMMARY}",
            detailed_summary=(
                f"{_DEMO_SUMMARY} The talk emphasized keeping transcripts searchable "
                "and delivering concise study-ready outputs."
            ),
            key_points=[
                "Capture audio and slides together to preserve context.",
                "Transcribe automatically and keep timestamps for review.",
                "Provide a TL;DR, takeaways and study resources quickly.",
            ],
            action_items=[
                "Test the recording workflow in noisy rooms.",
                "Try the chat on a longer session.",
                "Follow up on the suggested resources.",
            ],
            highlights=[
                "Audio and slide capture keeps context intact.",
                "Timestamped transcripts speed up review.",
                "Study summaries make sessions reusable.",
            ],
            language=language or "en",
        )
        return SummaryResult(summary=summary, resources=list(_DEMO_RESOURCES))
