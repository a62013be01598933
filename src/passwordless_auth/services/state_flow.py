"""Observable state holder — the push channel between a session and its UI."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StateFlow(Generic[T]):
    """Holds the latest value of one state projection.

    Subscribers get the current value the moment they subscribe and then
    every value published after that, in order, until they unsubscribe.
    """

    def __init__(self, initial: T, name: str = "") -> None:
        self._value = initial
        self._name = name or type(initial).__name__
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        for callback in list(self._subscribers):
            self._notify(callback, value)

    def update(self, fn: Callable[[T], T]) -> T:
        """Replace the value with ``fn(current)`` and publish it."""
        new_value = fn(self._value)
        self.set(new_value)
        return new_value

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        self._subscribers.append(callback)
        self._notify(callback, self._value)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _notify(self, callback: Callable[[T], None], value: T) -> None:
        try:
            callback(value)
        except Exception:
            logger.exception("Subscriber to %s raised", self._name)
