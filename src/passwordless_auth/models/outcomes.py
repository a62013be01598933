"""Validation outcomes returned by the OTP store.

None of these are errors: every way a validation can go is an ordinary
value, and callers are expected to ``match`` over :data:`ValidationOutcome`
exhaustively.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, TypeAlias


@dataclass(frozen=True)
class Success:
    """The candidate matched; the code has been consumed."""

    reason: ClassVar[str] = "success"


@dataclass(frozen=True)
class Expired:
    """The code outlived its validity window and has been removed."""

    reason: ClassVar[str] = "expired"


@dataclass(frozen=True)
class NotFound:
    """No live code exists for the identity."""

    reason: ClassVar[str] = "not_found"


@dataclass(frozen=True)
class AttemptsExhausted:
    """Every attempt was used up; the code has been removed."""

    reason: ClassVar[str] = "max_attempts_exceeded"


@dataclass(frozen=True)
class Invalid:
    """Wrong candidate. The code stays live with fewer attempts left."""

    attempts_remaining: int
    reason: ClassVar[str] = "invalid"


ValidationOutcome: TypeAlias = Success | Expired | NotFound | AttemptsExhausted | Invalid
