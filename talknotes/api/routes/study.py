from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from talknotes.api.dependencies import get_session_service
from talknotes.api.models import StudySessionResponse
from talknotes.sessions import SessionService

router = APIRouter(tags=["study"])


@router.get("/api/study", response_model=list[StudySessionResponse])
async def list_study_sessions(
    service: SessionService = Depends(get_session_service),
) -> list[StudySessionResponse]:
    """Ready sessions, newest first, with short summary and resource count."""
    sessions = await asyncio.to_thread(service.list_study_sessions)
    return [StudySessionResponse.model_validate(s) for s in sessions]
