"""Helpers that observe target commands while a plan builds."""

from __future__ import annotations

import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass
class CallRecorder:
    """Record command invocations and how many overlapped.

    Expose :meth:`record` and :meth:`fail` to plans through the environment,
    e.g. ``{"record": recorder.record}`` with a command ``record("a", 1)``.
    """

    delay_s: float = 0.0
    delays: Mapping[str, float] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)
    active: int = 0
    max_active: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, label: str, value: object = None) -> object:
        with self._lock:
            self.calls.append(label)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.delays.get(label, self.delay_s))
        finally:
            with self._lock:
                self.active -= 1
        return label if value is None else value

    def fail(self, label: str) -> object:
        with self._lock:
            self.calls.append(label)
        msg = f"{label} exploded"
        raise RuntimeError(msg)

    def count(self, label: str) -> int:
        with self._lock:
            return self.calls.count(label)


__all__ = ["CallRecorder"]
