"""Session endpoints: create, list, detail, attach audio, reindex, resummarize."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from talknotes.api.dependencies import get_session_service
from talknotes.api.models import (
    AttachAudioRequest,
    AttachAudioResponse,
    CreateSessionRequest,
    ReindexResponse,
    ResummarizeRequest,
    ResummarizeResponse,
    SessionDetailResponse,
    SessionResponse,
    SummaryResponse,
)
from talknotes.sessions import SessionService

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(
    request: CreateSessionRequest,
    service: SessionService = Depends(get_session_service),
) -> SessionResponse:
    speakers = [s.model_dump() for s in request.speakers] if request.speakers else None
    info = await asyncio.to_thread(service.create_session, request.title, request.topic_context, speakers)
    return SessionResponse.model_validate(info)


@router.get("", response_model=list[SessionResponse])
async def list_sessions(service: SessionService = Depends(get_session_service)) -> list[SessionResponse]:
    sessions = await asyncio.to_thread(service.list_sessions)
    return [SessionResponse.model_validate(s) for s in sessions]


@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_session(
    session_id: str,
    service: SessionService = Depends(get_session_service),
) -> SessionDetailResponse:
    detail = await asyncio.to_thread(service.get_detail, session_id)
    return SessionDetailResponse.model_validate(detail)


@router.post("/{session_id}/audio", response_model=AttachAudioResponse, status_code=202)
async def attach_audio(
    session_id: str,
    request: AttachAudioRequest,
    service: SessionService = Depends(get_session_service),
) -> AttachAudioResponse:
    """Attach audio and start processing in the background.

    Poll ``GET /api/sessions/{id}`` to see the session reach ``ready`` or
    ``failed``.
    """
    info = await asyncio.to_thread(
        lambda: service.start_processing(
            session_id,
            file_url=request.file_url,
            audio_base64=request.audio_base64,
            file_name=request.file_name,
            mime_type=request.mime_type,
            duration_seconds=request.duration_seconds,
        )
    )
    return AttachAudioResponse(
        message="Audio accepted, processing started",
        session=SessionResponse.model_validate(info),
    )


@router.post("/{session_id}/reindex", response_model=ReindexResponse)
async def reindex_session(
    session_id: str,
    service: SessionService = Depends(get_session_service),
) -> ReindexResponse:
    result = await asyncio.to_thread(service.reindex, session_id)
    return ReindexResponse(
        message="Reindexed",
        chunks_indexed=result.chunks_indexed,
        embedding_model=result.embedding_model,
    )


@router.post("/{session_id}/resummarize", response_model=ResummarizeResponse)
async def resummarize_session(
    session_id: str,
    request: ResummarizeRequest | None = None,
    service: SessionService = Depends(get_session_service),
) -> ResummarizeResponse:
    request = request or ResummarizeRequest()
    speakers = [s.model_dump() for s in request.speakers] if request.speakers is not None else None
    summary = await asyncio.to_thread(
        service.resummarize, session_id, speakers, request.topic_context, request.language
    )
    return ResummarizeResponse(summary=SummaryResponse.model_validate(summary))
