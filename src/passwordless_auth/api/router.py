"""Auth API router — exposes per-client auth sessions over HTTP.

Endpoints
---------
POST   /sessions/{session_id}/code          → request a code for an email
POST   /sessions/{session_id}/code/verify   → submit a code
POST   /sessions/{session_id}/code/resend   → replace the pending code
POST   /sessions/{session_id}/logout        → end the signed-in session
GET    /sessions/{session_id}               → current state snapshot
DELETE /sessions/{session_id}               → discard the session
"""

from __future__ import annotations

import logging
from typing import assert_never

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from passwordless_auth.config import settings
from passwordless_auth.models.auth_state import Authenticated, AuthState, CodeSent, NoAuth
from passwordless_auth.services.event_sink import build_event_sink
from passwordless_auth.services.session_manager import SessionManager
from passwordless_auth.session.auth_session import (
    REJECTED_INPUT,
    REJECTED_STATE,
    REJECTED_TIMEOUT,
    AuthResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/v1", tags=["auth"])

# Shared session registry (in-memory singleton)
_session_manager = SessionManager(event_sink=build_event_sink())

_REJECTION_STATUS = {
    REJECTED_INPUT: 400,
    REJECTED_STATE: 409,
    REJECTED_TIMEOUT: 504,
}


def get_session_manager() -> SessionManager:
    return _session_manager


# ── Response / request models ────────────────────────────

class CodeRequest(BaseModel):
    email: str


class CodeSubmission(BaseModel):
    code: str


class CodeIssuedResponse(BaseModel):
    message: str
    code: str | None = None


class VerifyResponse(BaseModel):
    success: bool
    message: str
    attempts_remaining: int
    must_resend: bool


class SessionSnapshot(BaseModel):
    status: str
    email: str | None = None
    countdown_seconds: int = 0
    attempts_remaining: int = 0
    can_resend: bool = True
    must_resend: bool = False
    error_message: str | None = None
    session_duration_seconds: int | None = None


class MessageResponse(BaseModel):
    message: str


# ── Endpoints ────────────────────────────────────────────

@router.post("/sessions/{session_id}/code", response_model=CodeIssuedResponse)
async def request_code(
    session_id: str,
    body: CodeRequest,
    manager: SessionManager = Depends(get_session_manager),
):
    """Issue a code for *body.email*.

    Delivery is out of band; the code is echoed back only in debug mode.
    """
    result = await manager.get(session_id).request_code(body.email)
    _raise_if_rejected(result)
    return CodeIssuedResponse(
        message=result.message or "",
        code=result.code if settings.debug else None,
    )


@router.post("/sessions/{session_id}/code/verify", response_model=VerifyResponse)
async def verify_code(
    session_id: str,
    body: CodeSubmission,
    manager: SessionManager = Depends(get_session_manager),
):
    """Check a submitted code; wrong or stale codes are a 200 with ``success: false``."""
    session = manager.get(session_id)
    result = await session.submit_code(body.code)
    _raise_if_rejected(result)

    otp_state = session.otp_input.value
    return VerifyResponse(
        success=result.ok,
        message=result.message or "",
        attempts_remaining=otp_state.attempts_remaining,
        must_resend=otp_state.must_resend,
    )


@router.post("/sessions/{session_id}/code/resend", response_model=CodeIssuedResponse)
async def resend_code(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager),
):
    result = await manager.get(session_id).resend()
    _raise_if_rejected(result)
    return CodeIssuedResponse(
        message=result.message or "",
        code=result.code if settings.debug else None,
    )


@router.post("/sessions/{session_id}/logout", response_model=MessageResponse)
async def logout(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager),
):
    result = await manager.get(session_id).logout()
    _raise_if_rejected(result)
    return MessageResponse(message=result.message or "")


@router.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager),
):
    """Snapshot every projection of the session's state."""
    session = manager.find(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Unknown session")
    state = session.auth_state.value
    otp_state = session.otp_input.value

    snapshot = SessionSnapshot(status=_status_of(state))
    if isinstance(state, CodeSent):
        snapshot.email = state.identity
        snapshot.countdown_seconds = otp_state.countdown_seconds
        snapshot.attempts_remaining = otp_state.attempts_remaining
        snapshot.can_resend = otp_state.can_resend
        snapshot.must_resend = otp_state.must_resend
        snapshot.error_message = otp_state.error_message
    elif isinstance(state, Authenticated) and session.session.value is not None:
        snapshot.email = state.identity
        snapshot.session_duration_seconds = session.session.value.duration_seconds(
            manager.clock.now()
        )
    else:
        snapshot.error_message = session.email_input.value.error_message
    return snapshot


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
async def delete_session(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager),
):
    manager.clear(session_id)
    return MessageResponse(message="Session cleared")


# ── Helpers ──────────────────────────────────────────────

def _raise_if_rejected(result: AuthResponse) -> None:
    if result.rejection is None:
        return
    logger.info("Request rejected (%s): %s", result.rejection, result.message)
    raise HTTPException(
        status_code=_REJECTION_STATUS.get(result.rejection, 400), detail=result.message
    )


def _status_of(state: AuthState) -> str:
    match state:
        case NoAuth():
            return "no_auth"
        case CodeSent():
            return "code_sent"
        case Authenticated():
            return "authenticated"
        case _:
            assert_never(state)
