"""Authentication session — drives the email → code → signed-in flow.

State machine
-------------
``NoAuth`` ──request_code──▶ ``CodeSent`` ──submit_code (match)──▶ ``Authenticated``
                               │  ▲                                     │
                               └──┘ resend / wrong code                 │
``NoAuth`` ◀───────────────────────────────────────────── logout ───────┘

While in ``CodeSent`` a countdown task wakes once per tick and publishes
the whole seconds left on the code, measured on the injected clock.  The
countdown only ever *reports* expiry; the OTP store remains the authority
and rejects the code on the next submission.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, replace
from typing import Any, assert_never

from passwordless_auth.config import Settings, settings
from passwordless_auth.models.auth_state import (
    Authenticated,
    AuthState,
    CodeSent,
    EmailInputState,
    NoAuth,
    OtpInputState,
    SessionState,
)
from passwordless_auth.models.outcomes import (
    AttemptsExhausted,
    Expired,
    Invalid,
    NotFound,
    Success,
    ValidationOutcome,
)
from passwordless_auth.otp.store import OtpStore
from passwordless_auth.services.clock import Clock, SystemClock
from passwordless_auth.services.event_sink import (
    LOGOUT,
    OTP_GENERATED,
    OTP_VALIDATION_FAILURE,
    OTP_VALIDATION_SUCCESS,
    EventSink,
    LoggingEventSink,
)
from passwordless_auth.services.state_flow import StateFlow
from passwordless_auth.session.validators import (
    filter_code_input,
    is_valid_email,
    is_well_formed_code,
)

logger = logging.getLogger(__name__)

# ── User-facing messages ─────────────────────────────────
INVALID_EMAIL_MESSAGE = "Please enter a valid email"
EXPIRED_MESSAGE = "OTP has expired. Please request a new one."
EXHAUSTED_MESSAGE = "Maximum attempts exceeded. Please request a new OTP."
NOT_FOUND_MESSAGE = "OTP not found. Please request a new one."
TIMED_OUT_MESSAGE = "Request timed out. Please try again."
NO_CODE_REQUESTED_MESSAGE = "No code has been requested."
ALREADY_SIGNED_IN_MESSAGE = "Already signed in. Log out first."
NOT_SIGNED_IN_MESSAGE = "Not signed in."

# Why a request was turned away before reaching the OTP store
REJECTED_INPUT = "invalid_input"
REJECTED_STATE = "wrong_state"
REJECTED_TIMEOUT = "timeout"


@dataclass
class AuthResponse:
    """Value object returned by every inbound session operation.

    ``rejection`` is set when the request never reached the OTP store
    (malformed email, wrong-length code, wrong state, timeout); nothing
    changed and no event was emitted.  ``code`` is set when a code was
    issued, ``outcome`` when one was checked.
    """

    message: str | None = None
    code: str | None = None
    outcome: ValidationOutcome | None = None
    rejection: str | None = None

    @property
    def rejected(self) -> bool:
        return self.rejection is not None

    @property
    def ok(self) -> bool:
        return not self.rejected and (self.outcome is None or isinstance(self.outcome, Success))


class AuthSession:
    """One user's passwordless sign-in flow.

    All inbound operations are serialized, so the session is the only
    writer of its four observable projections: ``auth_state``,
    ``email_input``, ``otp_input`` and ``session``.
    """

    def __init__(
        self,
        otp_store: OtpStore,
        event_sink: EventSink | None = None,
        clock: Clock | None = None,
        config: Settings | None = None,
    ) -> None:
        self._store = otp_store
        self._sink = event_sink or LoggingEventSink()
        self._clock = clock or SystemClock()
        self._config = config or settings

        self.code_length = otp_store.code_length
        self.max_attempts = otp_store.max_attempts
        self.expiry_seconds = int(otp_store.expiry_seconds)
        self._tick_seconds = self._config.countdown_tick_ms / 1000

        self.auth_state: StateFlow[AuthState] = StateFlow(NoAuth(), "auth_state")
        self.email_input: StateFlow[EmailInputState] = StateFlow(EmailInputState(), "email_input")
        self.otp_input: StateFlow[OtpInputState] = StateFlow(self._fresh_otp_input(), "otp_input")
        self.session: StateFlow[SessionState | None] = StateFlow(None, "session")

        self._lock = asyncio.Lock()
        self._countdown_task: asyncio.Task[None] | None = None
        self._countdown_generation = 0

    # ── Draft input ──────────────────────────────────────

    def update_email(self, email: str) -> None:
        """Store the email as typed so far."""
        self.email_input.update(lambda s: replace(s, email=email, error_message=None))

    def update_code(self, text: str) -> None:
        """Store the code as typed so far, digits only."""
        code = filter_code_input(text, self.code_length)
        self.otp_input.update(lambda s: replace(s, code=code, error_message=None))

    # ── Inbound operations ───────────────────────────────

    async def request_code(
        self, identity: str | None = None, *, timeout: float | None = None
    ) -> AuthResponse:
        """Issue a code for *identity* (or the drafted email) and await it.

        Allowed before sign-in, including while a code is already pending,
        which moves the flow over to the new address.
        """
        async with self._lock:
            if isinstance(self.auth_state.value, Authenticated):
                return self._reject(ALREADY_SIGNED_IN_MESSAGE, REJECTED_STATE)

            if identity is not None:
                self.update_email(identity)
            email = self.email_input.value.email.strip()

            if not is_valid_email(email):
                logger.info("Rejected malformed email %r", email)
                self.email_input.update(
                    lambda s: replace(s, error_message=INVALID_EMAIL_MESSAGE)
                )
                return self._reject(INVALID_EMAIL_MESSAGE, REJECTED_INPUT)

            self.email_input.update(lambda s: replace(s, is_loading=True, error_message=None))
            try:
                await self._round_trip(self._config.request_latency_ms, timeout)
            except asyncio.TimeoutError:
                logger.warning("Code request for %s timed out", email)
                self.email_input.update(
                    lambda s: replace(s, is_loading=False, error_message=TIMED_OUT_MESSAGE)
                )
                return self._reject(TIMED_OUT_MESSAGE, REJECTED_TIMEOUT)

            self._cancel_countdown()
            code = self._store.generate(email)
            self._emit(OTP_GENERATED, email)

            self.email_input.update(lambda s: replace(s, is_loading=False, otp_sent=True))
            self.auth_state.set(CodeSent(identity=email))
            self.otp_input.set(self._fresh_otp_input(countdown_seconds=self.expiry_seconds))
            self._start_countdown(email, code)

            logger.info("Code sent to %s", email)
            return AuthResponse(message=f"OTP sent to {email}", code=code)

    async def submit_code(
        self, candidate: str | None = None, *, timeout: float | None = None
    ) -> AuthResponse:
        """Check *candidate* (or the drafted code) against the pending code."""
        async with self._lock:
            state = self.auth_state.value
            if not isinstance(state, CodeSent):
                return self._reject(NO_CODE_REQUESTED_MESSAGE, REJECTED_STATE)

            if candidate is None:
                candidate = self.otp_input.value.code

            if not is_well_formed_code(candidate, self.code_length):
                message = f"Please enter {self.code_length}-digit OTP"
                self.otp_input.update(lambda s: replace(s, error_message=message))
                return self._reject(message, REJECTED_INPUT)

            self.otp_input.update(lambda s: replace(s, is_loading=True, error_message=None))
            try:
                await self._round_trip(self._config.verify_latency_ms, timeout)
            except asyncio.TimeoutError:
                logger.warning("Code verification for %s timed out", state.identity)
                self.otp_input.update(
                    lambda s: replace(s, is_loading=False, error_message=TIMED_OUT_MESSAGE)
                )
                return self._reject(TIMED_OUT_MESSAGE, REJECTED_TIMEOUT)

            outcome = self._store.validate(state.identity, candidate)
            return self._apply_outcome(state.identity, outcome)

    async def resend(self, *, timeout: float | None = None) -> AuthResponse:
        """Replace the pending code with a fresh one and restart the countdown."""
        async with self._lock:
            state = self.auth_state.value
            if not isinstance(state, CodeSent):
                return self._reject(NO_CODE_REQUESTED_MESSAGE, REJECTED_STATE)

            self.otp_input.update(
                lambda s: replace(
                    s, is_loading=True, error_message=None, code="", can_resend=False
                )
            )
            try:
                await self._round_trip(self._config.request_latency_ms, timeout)
            except asyncio.TimeoutError:
                logger.warning("Resend for %s timed out", state.identity)
                self.otp_input.update(
                    lambda s: replace(
                        s, is_loading=False, can_resend=True, error_message=TIMED_OUT_MESSAGE
                    )
                )
                return self._reject(TIMED_OUT_MESSAGE, REJECTED_TIMEOUT)

            self._cancel_countdown()
            code = self._store.generate(state.identity)
            self._emit(OTP_GENERATED, state.identity)

            self.otp_input.update(
                lambda s: replace(
                    s,
                    is_loading=False,
                    attempts_remaining=self.max_attempts,
                    can_resend=True,
                    must_resend=False,
                    countdown_seconds=self.expiry_seconds,
                )
            )
            self._start_countdown(state.identity, code)

            logger.info("Code re-sent to %s", state.identity)
            return AuthResponse(message=f"OTP sent to {state.identity}", code=code)

    async def logout(self) -> AuthResponse:
        """End the signed-in session and reset every projection."""
        async with self._lock:
            state = self.auth_state.value
            if not isinstance(state, Authenticated):
                return self._reject(NOT_SIGNED_IN_MESSAGE, REJECTED_STATE)

            duration = max(0, int(self._clock.now() - state.session_started_at))
            self._emit(LOGOUT, state.identity, session_duration_seconds=duration)

            self._cancel_countdown()
            self.auth_state.set(NoAuth())
            self.email_input.set(EmailInputState())
            self.otp_input.set(self._fresh_otp_input())
            self.session.set(None)

            logger.info("%s logged out after %ds", state.identity, duration)
            return AuthResponse(message="Logged out")

    def close(self) -> None:
        """Stop background work; call when the session is discarded."""
        self._cancel_countdown()

    @property
    def countdown_active(self) -> bool:
        return self._countdown_task is not None and not self._countdown_task.done()

    # ── Outcome handling ─────────────────────────────────

    def _apply_outcome(self, identity: str, outcome: ValidationOutcome) -> AuthResponse:
        match outcome:
            case Success():
                self._cancel_countdown()
                self._emit(OTP_VALIDATION_SUCCESS, identity)
                started_at = self._clock.now()
                self.otp_input.update(
                    lambda s: replace(
                        s,
                        is_loading=False,
                        code="",
                        error_message=None,
                        must_resend=False,
                        countdown_seconds=0,
                    )
                )
                self.auth_state.set(Authenticated(identity=identity, session_started_at=started_at))
                self.session.set(SessionState(email=identity, session_started_at=started_at))
                logger.info("%s authenticated", identity)
                return AuthResponse(message="Verified", outcome=outcome)

            case Invalid(attempts_remaining=remaining):
                message = f"Invalid OTP. Attempts remaining: {remaining}"
                self._emit(OTP_VALIDATION_FAILURE, identity, reason=outcome.reason)
                self.otp_input.update(
                    lambda s: replace(
                        s, is_loading=False, error_message=message, attempts_remaining=remaining
                    )
                )
                return AuthResponse(message=message, outcome=outcome)

            case Expired():
                return self._require_resend(identity, outcome, EXPIRED_MESSAGE)

            case AttemptsExhausted():
                self.otp_input.update(lambda s: replace(s, attempts_remaining=0))
                return self._require_resend(identity, outcome, EXHAUSTED_MESSAGE)

            case NotFound():
                return self._require_resend(identity, outcome, NOT_FOUND_MESSAGE)

            case _:
                assert_never(outcome)

    def _require_resend(
        self, identity: str, outcome: ValidationOutcome, message: str
    ) -> AuthResponse:
        """The pending code is dead: stop counting and ask for a new one."""
        self._cancel_countdown()
        self._emit(OTP_VALIDATION_FAILURE, identity, reason=outcome.reason)
        self.otp_input.update(
            lambda s: replace(
                s,
                is_loading=False,
                error_message=message,
                can_resend=True,
                must_resend=True,
                countdown_seconds=0,
            )
        )
        return AuthResponse(message=message, outcome=outcome)

    # ── Countdown ────────────────────────────────────────

    def _start_countdown(self, identity: str, code: str) -> None:
        self._cancel_countdown()
        generation = self._countdown_generation
        self._countdown_task = asyncio.create_task(
            self._run_countdown(identity, code, generation),
            name=f"otp-countdown:{identity}",
        )

    def _cancel_countdown(self) -> None:
        # Bumping the generation retires the running task even if it has
        # already been scheduled to wake up.
        self._countdown_generation += 1
        if self._countdown_task is not None:
            self._countdown_task.cancel()
            self._countdown_task = None

    def _seconds_left(self, issued_at: float) -> int:
        elapsed = self._clock.now() - issued_at
        return max(0, math.ceil(self._store.expiry_seconds - elapsed))

    async def _run_countdown(self, identity: str, code: str, generation: int) -> None:
        """Publish the whole seconds left on *code*, read off the clock each tick."""
        remaining = self.expiry_seconds
        while True:
            await asyncio.sleep(self._tick_seconds)
            if generation != self._countdown_generation:
                return

            record = self._store.peek(identity)
            if record is None or record.code != code:
                logger.debug("Countdown for %s stopped: code consumed or replaced", identity)
                return

            left = self._seconds_left(record.issued_at)
            if left > 0 and not self._store.has_live_code(identity):
                left = 0
            if left == 0:
                break
            if left != remaining:
                remaining = left
                logger.debug("OTP for %s: %ds left", identity, remaining)
                self.otp_input.update(lambda s: replace(s, countdown_seconds=remaining))

        logger.info("OTP for %s expired", identity)
        self.otp_input.update(
            lambda s: replace(
                s,
                countdown_seconds=0,
                can_resend=True,
                must_resend=True,
                error_message=EXPIRED_MESSAGE,
            )
        )

    # ── Private helpers ──────────────────────────────────

    def _fresh_otp_input(self, countdown_seconds: int = 0) -> OtpInputState:
        return OtpInputState(
            attempts_remaining=self.max_attempts, countdown_seconds=countdown_seconds
        )

    async def _round_trip(self, latency_ms: int, timeout: float | None) -> None:
        """Stand-in for the network hop, bounded by *timeout* seconds."""
        if timeout is None:
            timeout = self._config.request_timeout_seconds
        await asyncio.wait_for(asyncio.sleep(latency_ms / 1000), timeout)

    def _emit(self, event_name: str, identity: str, **extra: Any) -> None:
        payload = {"identity": identity, "timestamp": self._clock.now(), **extra}
        try:
            self._sink.emit(event_name, payload)
        except Exception:
            logger.exception("Event sink failed on %s", event_name)

    @staticmethod
    def _reject(message: str, rejection: str) -> AuthResponse:
        return AuthResponse(message=message, rejection=rejection)
