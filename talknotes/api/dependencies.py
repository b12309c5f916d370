from __future__ import annotations

from fastapi import Request

from talknotes.sessions import SessionService


def get_session_service(request: Request) -> SessionService:
    """Return the service the app was started with."""
    return request.app.state.service
