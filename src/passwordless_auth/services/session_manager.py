"""Session manager — tracks one auth session per connected client."""

from __future__ import annotations

import logging

from passwordless_auth.config import Settings, settings
from passwordless_auth.otp.store import OtpStore
from passwordless_auth.services.clock import Clock, SystemClock
from passwordless_auth.services.event_sink import EventSink, LoggingEventSink
from passwordless_auth.session.auth_session import AuthSession

logger = logging.getLogger(__name__)


class SessionManager:
    """In-memory registry of :class:`AuthSession` objects keyed by client session id.

    All sessions share one OTP store, event sink and clock, so a code issued
    through one client can be checked from any other.
    """

    def __init__(
        self,
        otp_store: OtpStore | None = None,
        event_sink: EventSink | None = None,
        clock: Clock | None = None,
        config: Settings | None = None,
    ) -> None:
        self._config = config or settings
        self.clock = clock or SystemClock()
        self.otp_store = otp_store or OtpStore(
            self.clock,
            code_length=self._config.otp_code_length,
            expiry_seconds=self._config.otp_expiry_seconds,
            max_attempts=self._config.otp_max_attempts,
        )
        self.event_sink = event_sink or LoggingEventSink()
        self._sessions: dict[str, AuthSession] = {}

    def get(self, session_id: str) -> AuthSession:
        """Retrieve or create the session for *session_id*."""
        if session_id not in self._sessions:
            logger.info("Creating new session %s", session_id)
            self._sessions[session_id] = AuthSession(
                self.otp_store, self.event_sink, self.clock, self._config
            )
        return self._sessions[session_id]

    def find(self, session_id: str) -> AuthSession | None:
        """Return the session for *session_id* if one exists, without creating it."""
        return self._sessions.get(session_id)

    def clear(self, session_id: str) -> None:
        """Remove a session (e.g. on disconnect), stopping its countdown."""
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()
        logger.info("Session cleared for %s", session_id)

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.clear(session_id)

    @property
    def active_count(self) -> int:
        """Number of active sessions (useful for monitoring)."""
        return len(self._sessions)
