"""Lightweight in-memory activity counters.

Incremented by the lifecycle and streak services; reset when the server
restarts. The health dashboard just shows live process activity, durable
numbers come from the database.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field


@dataclass
class SessionStats:
    started_at: float = field(default_factory=time.time)
    sessions_started: int = 0
    sessions_completed: int = 0
    sessions_abandoned: int = 0
    stale_reconciled: int = 0
    clock_anomalies: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def uptime_seconds(self) -> int:
        return int(time.time() - self.started_at)

    def bump(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)


# Process-wide counters shared by services and the dashboard route
stats = SessionStats()
