"""Data models for transcription and summarization results."""

from __future__ import annotations

from dataclasses import dataclass, field

from talknotes.ingestion.models import TranscriptSegment
from talknotes.pipeline_config import PipelineConfig

HIGHLIGHT_COUNT = PipelineConfig().highlight_count
HIGHLIGHT_PLACEHOLDER = "Highlight not available."


def normalize_highlights(values: list[str], count: int = HIGHLIGHT_COUNT) -> list[str]:
    """Pad with a placeholder or truncate so there are exactly *count* highlights."""
    highlights = [str(v) for v in values if str(v).strip()][:count]
    highlights.extend([HIGHLIGHT_PLACEHOLDER] * (count - len(highlights)))
    return highlights


@dataclass
class SessionSummary:
    """Structured summary of a session. Always carries exactly ``HIGHLIGHT_COUNT`` highlights."""

    short_summary: str
    detailed_summary: str
    key_points: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    highlights: list[str] = field(default_factory=list)
    language: str | None = None

    def __post_init__(self) -> None:
        self.highlights = normalize_highlights(list(self.highlights or []))


@dataclass
class Resource:
    """A suggested follow-up resource for the session topic."""

    title: str
    url: str
    source_name: str = ""
    description: str = ""


@dataclass
class Transcription:
    """Raw transcription output: full text, detected language, timed segments."""

    text: str
    language: str | None = None
    segments: list[TranscriptSegment] = field(default_factory=list)


@dataclass
class SummaryResult:
    summary: SessionSummary
    resources: list[Resource] = field(default_factory=list)


@dataclass
class SessionOutputs:
    """Everything one processing run derives from a session's audio."""

    segments: list[TranscriptSegment]
    summary: SessionSummary
    resources: list[Resource]
    transcript_language: str | None = None
