"""Audit trail keys: one partition per audited record, one row per write."""

import threading
from datetime import datetime, timedelta
from typing import Optional
from tablestore.store.base import utcnow


def audit_partition_key(partition_key: str, row_key: str) -> str:
    return f"{partition_key}-{row_key}"


class AuditClock:
    """Millisecond UTC row keys, strictly increasing for the life of the process."""

    def __init__(self):
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def next_row_key(self, now: Optional[datetime] = None) -> str:
        now = now or utcnow()
        now = now.replace(microsecond=(now.microsecond // 1000) * 1000)
        with self._lock:
            if self._last is not None and now <= self._last:
                now = self._last + timedelta(milliseconds=1)
            self._last = now
        return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


audit_clock = AuditClock()
