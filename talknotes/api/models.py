"""Pydantic request/response schemas for the talknotes API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Speaker(BaseModel):
    name: str
    role: str | None = None


class CreateSessionRequest(BaseModel):
    """Request body for POST /api/sessions."""

    title: str | None = None
    topic_context: str | None = None
    speakers: list[Speaker] | None = None


class AttachAudioRequest(BaseModel):
    """Request body for POST /api/sessions/{id}/audio.

    Either ``file_url`` or ``audio_base64`` (optionally a data URL) is required.
    """

    file_url: str | None = None
    audio_base64: str | None = None
    file_name: str | None = None
    mime_type: str | None = None
    duration_seconds: int | None = Field(default=None, ge=0)


class ResummarizeRequest(BaseModel):
    speakers: list[Speaker] | None = None
    topic_context: str | None = None
    language: str | None = None


class ChatRequest(BaseModel):
    """Request body for POST /api/sessions/{id}/chat."""

    message: str
    language: str | None = None
    include_external_reading: bool = False


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    status: str
    started_at: datetime
    ended_at: datetime | None = None
    duration_seconds: int | None = None
    transcript_language: str | None = None
    summary_language: str | None = None
    topic_context: str | None = None
    speaker_metadata: list[dict[str, Any]] = []


class SegmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    text: str
    start_time: float
    end_time: float
    speaker: str | None = None


class SummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    short_summary: str
    detailed_summary: str
    key_points: list[str] = []
    action_items: list[str] = []
    highlights: list[str] = []
    language: str | None = None


class ResourceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    title: str
    url: str
    source_name: str = ""
    description: str = ""


class ChatMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    role: str
    content: str
    citations: list[dict[str, Any]] = []
    external_links: list[dict[str, Any]] = []
    language: str | None = None
    created_at: datetime


class SessionDetailResponse(BaseModel):
    """Full session detail: transcript, summary, resources and chat history."""

    model_config = ConfigDict(from_attributes=True)

    session: SessionResponse
    audio_url: str | None = None
    transcript: list[SegmentResponse] = []
    summary: SummaryResponse | None = None
    resources: list[ResourceResponse] = []
    chat_messages: list[ChatMessageResponse] = []


class AttachAudioResponse(BaseModel):
    message: str
    session: SessionResponse


class ReindexResponse(BaseModel):
    message: str
    chunks_indexed: int
    embedding_model: str | None = None


class ResummarizeResponse(BaseModel):
    summary: SummaryResponse


class Citation(BaseModel):
    chunk_id: str
    start_time_seconds: float
    end_time_seconds: float
    text: str


class ExternalLink(BaseModel):
    title: str
    url: str
    note: str


class ChatResponse(BaseModel):
    """Response body for POST /api/sessions/{id}/chat."""

    model_config = ConfigDict(from_attributes=True)

    assistant_message: str
    citations: list[Citation] = []
    external_links: list[ExternalLink] = []
    top_score: float
    language: str


class StudySessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    status: str
    started_at: datetime
    duration_seconds: int | None = None
    summary: str | None = None
    resource_count: int = 0
