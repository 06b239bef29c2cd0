"""Ordered per-call log shared by one benchmark run."""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Tuple

from .models import RPCCallRecord

logger = logging.getLogger(__name__)

LogListener = Callable[[Tuple[RPCCallRecord, ...]], None]


class LatencyLog:
    """Append/patch sequence of RPC call records.

    Pending records are appended when a call starts. ``reconcile`` replaces the
    matching pending record in place when the call finishes, so display order
    stays stable while the list converges to one entry per call. Every mutation
    holds the lock, and listeners receive the snapshot taken under it.
    """

    def __init__(self) -> None:
        self._records: List[RPCCallRecord] = []
        self._lock = threading.Lock()
        self._listeners: List[LogListener] = []

    def subscribe(self, listener: LogListener) -> None:
        self._listeners.append(listener)

    def record_start(self, record: RPCCallRecord) -> None:
        if not record.is_pending:
            record = RPCCallRecord.pending(record.method, record.start_time)
        with self._lock:
            self._records.append(record)
            snapshot = tuple(self._records)
        self._notify(snapshot)

    def reconcile(self, record: RPCCallRecord) -> None:
        with self._lock:
            for index, existing in enumerate(self._records):
                if (
                    existing.is_pending
                    and existing.method == record.method
                    and existing.start_time == record.start_time
                ):
                    self._records[index] = record
                    break
            else:
                self._records.append(record)
            snapshot = tuple(self._records)
        self._notify(snapshot)

    def snapshot(self) -> Tuple[RPCCallRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for record in self._records if record.is_pending)

    def methods(self) -> List[str]:
        return [record.method for record in self.snapshot()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _notify(self, snapshot: Tuple[RPCCallRecord, ...]) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001 - listeners are a side channel
                logger.exception("Latency log listener %r failed", listener)
