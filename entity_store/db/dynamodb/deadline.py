from __future__ import annotations

import threading
import time
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Deadline:
    """
    Caller-supplied time limit and/or cancel signal for store round trips.

    `expires_at` is a `time.monotonic()` timestamp; `cancel_event` lets another
    thread abort the wait early.
    """

    expires_at: float | None = None
    cancel_event: threading.Event | None = None

    @classmethod
    def after(cls, seconds: float, *, cancel_event: threading.Event | None = None) -> "Deadline":
        return cls(expires_at=time.monotonic() + max(0.0, float(seconds)), cancel_event=cancel_event)

    @classmethod
    def cancellable(cls, cancel_event: threading.Event) -> "Deadline":
        return cls(expires_at=None, cancel_event=cancel_event)

    @property
    def cancelled(self) -> bool:
        return bool(self.cancel_event is not None and self.cancel_event.is_set())

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() >= self.expires_at

    @property
    def done(self) -> bool:
        return self.cancelled or self.expired

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    def reason(self) -> str:
        return "cancelled" if self.cancelled else "deadline exceeded"
