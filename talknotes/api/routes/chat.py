"""Chat endpoint: grounded Q&A over one session's transcript."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from talknotes.api.dependencies import get_session_service
from talknotes.api.models import ChatRequest, ChatResponse
from talknotes.sessions import SessionService

router = APIRouter(tags=["chat"])


@router.post("/api/sessions/{session_id}/chat", response_model=ChatResponse)
async def chat(
    session_id: str,
    request: ChatRequest,
    service: SessionService = Depends(get_session_service),
) -> ChatResponse:
    """Answer a question about the session.

    Below the confidence floor the fixed non-answer is returned without
    calling the model.  Either way the exchange is saved to chat history.
    """
    result = await asyncio.to_thread(
        service.chat,
        session_id,
        request.message,
        request.language,
        request.include_external_reading,
    )
    return ChatResponse.model_validate(result)
