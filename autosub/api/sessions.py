"""
In-process registry of reservation workflows.

A workflow is session-scoped: it lives in this process from ``start``
until the draft is abandoned, submitted, or left idle longer than
``idle_ttl_seconds``.  Drafts are never persisted, so a restart simply
drops the in-progress ones.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable, Optional

from autosub.domain.workflow import ReservationWorkflow

logger = logging.getLogger(__name__)


class ReservationRegistry:
    def __init__(
        self,
        idle_ttl_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.idle_ttl = idle_ttl_seconds
        self._clock = clock
        self._workflows: dict[str, ReservationWorkflow] = {}
        self._touched: dict[str, float] = {}

    def add(self, workflow: ReservationWorkflow) -> str:
        self.evict_idle()
        reservation_id = uuid.uuid4().hex
        self._workflows[reservation_id] = workflow
        self._touched[reservation_id] = self._clock()
        return reservation_id

    def get(self, reservation_id: str) -> Optional[ReservationWorkflow]:
        self.evict_idle()
        workflow = self._workflows.get(reservation_id)
        if workflow is not None:
            self._touched[reservation_id] = self._clock()
        return workflow

    def discard(self, reservation_id: str) -> None:
        self._workflows.pop(reservation_id, None)
        self._touched.pop(reservation_id, None)

    def evict_idle(self) -> int:
        """Drop drafts untouched for ``idle_ttl``; in-flight ones are kept."""
        cutoff = self._clock() - self.idle_ttl
        stale = [
            rid
            for rid, touched in self._touched.items()
            if touched < cutoff and not self._workflows[rid].is_submitting
        ]
        for rid in stale:
            self.discard(rid)
        if stale:
            logger.info("Evicted %d idle reservation drafts", len(stale))
        return len(stale)

    def __len__(self) -> int:
        self.evict_idle()
        return len(self._workflows)
