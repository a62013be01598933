"""In-memory OTP store with expiry and attempt limiting."""

from __future__ import annotations

import logging
import random
import string
import threading
from dataclasses import dataclass, replace

from passwordless_auth.config import settings
from passwordless_auth.models.outcomes import (
    AttemptsExhausted,
    Expired,
    Invalid,
    NotFound,
    Success,
    ValidationOutcome,
)
from passwordless_auth.services.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OtpRecord:
    """The live code for one identity and its validation bookkeeping."""

    code: str
    issued_at: float
    attempts_remaining: int


class OtpStore:
    """Maps ``identity → OtpRecord``, one record per lower-cased identity.

    Expired and exhausted records are purged lazily on validation; there is
    no background reaper.  Every operation holds the per-identity lock for
    its whole read-modify-write, so calls on the same identity never
    interleave while unrelated identities proceed independently.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        *,
        code_length: int | None = None,
        expiry_seconds: float | None = None,
        max_attempts: int | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self.code_length = code_length if code_length is not None else settings.otp_code_length
        self.expiry_seconds = (
            expiry_seconds if expiry_seconds is not None else settings.otp_expiry_seconds
        )
        self.max_attempts = max_attempts if max_attempts is not None else settings.otp_max_attempts
        self._rng = rng or random.Random()

        self._records: dict[str, OtpRecord] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    # ── Public API ───────────────────────────────────────

    def generate(self, identity: str) -> str:
        """Issue a fresh code for *identity*, replacing any previous one.

        The replaced code is dead from this point on, even if it had not
        expired, and the attempt counter starts over.
        """
        key = self._normalize(identity)
        code = "".join(self._rng.choices(string.digits, k=self.code_length))
        with self._lock_for(key):
            self._records[key] = OtpRecord(
                code=code,
                issued_at=self._clock.now(),
                attempts_remaining=self.max_attempts,
            )
        logger.info("OTP generated for %s: %s", key, code)
        return code

    def validate(self, identity: str, candidate: str) -> ValidationOutcome:
        """Check *candidate* against the live code for *identity*.

        Expiry is checked before exhaustion, and both before equality.  A
        wrong guess that takes the counter to zero still returns
        ``Invalid(0)``; the record is only dropped, as
        ``AttemptsExhausted``, on the attempt after that.
        """
        key = self._normalize(identity)
        with self._lock_for(key):
            record = self._records.get(key)
            if record is None:
                logger.info("No OTP on file for %s", key)
                return NotFound()

            if self._is_expired(record):
                del self._records[key]
                logger.info("OTP expired for %s", key)
                return Expired()

            if record.attempts_remaining <= 0:
                del self._records[key]
                logger.info("OTP attempts exhausted for %s", key)
                return AttemptsExhausted()

            if candidate == record.code:
                # Consume the OTP on successful verification
                del self._records[key]
                logger.info("OTP verified for %s", key)
                return Success()

            updated = replace(record, attempts_remaining=record.attempts_remaining - 1)
            self._records[key] = updated
            logger.info(
                "Wrong OTP for %s (%d attempts remaining)", key, updated.attempts_remaining
            )
            return Invalid(attempts_remaining=updated.attempts_remaining)

    def has_live_code(self, identity: str) -> bool:
        """Return ``True`` if *identity* has an unexpired code on file."""
        key = self._normalize(identity)
        with self._lock_for(key):
            record = self._records.get(key)
            return record is not None and not self._is_expired(record)

    def remaining_attempts(self, identity: str) -> int:
        """Attempts left on the current code, ``0`` if there is none."""
        record = self.peek(identity)
        return record.attempts_remaining if record else 0

    def peek(self, identity: str) -> OtpRecord | None:
        """Return the stored record for *identity* without touching it."""
        key = self._normalize(identity)
        with self._lock_for(key):
            return self._records.get(key)

    # ── Private helpers ──────────────────────────────────

    @staticmethod
    def _normalize(identity: str) -> str:
        return identity.lower()

    def _is_expired(self, record: OtpRecord) -> bool:
        return self._clock.now() - record.issued_at >= self.expiry_seconds

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock
