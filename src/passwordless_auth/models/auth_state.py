"""Authentication state machine states and the UI-facing projections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

from passwordless_auth.config import settings


# ── Machine states ───────────────────────────────────────

@dataclass(frozen=True)
class NoAuth:
    """Initial state; also where every logout lands."""


@dataclass(frozen=True)
class CodeSent:
    """A code has been issued to *identity* and not yet consumed."""

    identity: str


@dataclass(frozen=True)
class Authenticated:
    """The code was accepted; the session started at *session_started_at*."""

    identity: str
    session_started_at: float


AuthState: TypeAlias = NoAuth | CodeSent | Authenticated


# ── UI projections ───────────────────────────────────────

@dataclass(frozen=True)
class EmailInputState:
    """What the email-entry screen shows."""

    email: str = ""
    is_loading: bool = False
    error_message: str | None = None
    otp_sent: bool = False


@dataclass(frozen=True)
class OtpInputState:
    """What the code-entry screen shows.

    ``must_resend`` is raised once the current code can no longer succeed
    (expired, exhausted or missing) and only a fresh code will do.
    """

    code: str = ""
    is_loading: bool = False
    error_message: str | None = None
    attempts_remaining: int = settings.otp_max_attempts
    can_resend: bool = True
    countdown_seconds: int = 0
    must_resend: bool = False


@dataclass(frozen=True)
class SessionState:
    """What the signed-in screen shows."""

    email: str
    session_started_at: float

    def duration_seconds(self, now: float) -> int:
        return max(0, int(now - self.session_started_at))

    def duration_label(self, now: float) -> str:
        """Elapsed session time as ``MM:SS``."""
        minutes, seconds = divmod(self.duration_seconds(now), 60)
        return f"{minutes:02d}:{seconds:02d}"
