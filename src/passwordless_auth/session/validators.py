"""Input validators applied before anything reaches the OTP store."""

from __future__ import annotations

import re

_EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def is_valid_email(email: str) -> bool:
    """Return True if *email* looks like ``local@domain.tld``.

    Purely syntactic: one ``@``, a non-empty local part, a dotted domain
    and no whitespace.  Deliverability is not checked.
    """
    return _EMAIL_PATTERN.fullmatch(email) is not None


def is_well_formed_code(candidate: str, length: int) -> bool:
    """Return True if *candidate* is exactly *length* ASCII digits."""
    return len(candidate) == length and all("0" <= ch <= "9" for ch in candidate)


def filter_code_input(text: str, length: int) -> str:
    """Keep only ASCII digits from *text*, truncated to *length*."""
    return "".join(ch for ch in text if "0" <= ch <= "9")[:length]
