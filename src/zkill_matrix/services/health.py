"""
Pipeline Liveness Tracking.

Each pipeline stage records when it last did useful work. A stage is stale
once that age strictly exceeds its threshold; the bot is unhealthy when any
stage is stale.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from ..core.constants import MAX_DELIVERY_AGE, MAX_EXTERNAL_CALL_AGE, MAX_POLL_AGE


class HealthCategory(str, Enum):
    """Pipeline stages with independent liveness timestamps."""

    POLL = "poll"
    EXTERNAL_CALL = "externalCall"
    DELIVERY = "delivery"


DEFAULT_THRESHOLDS: dict[HealthCategory, float] = {
    HealthCategory.POLL: MAX_POLL_AGE,
    HealthCategory.EXTERNAL_CALL: MAX_EXTERNAL_CALL_AGE,
    HealthCategory.DELIVERY: MAX_DELIVERY_AGE,
}

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


class HealthMonitor:
    """
    Shared liveness state for the pipeline.

    Created once at startup and handed to every component that reports
    progress. Each category is written by exactly one component; the health
    server reads snapshots from its own thread.
    """

    def __init__(
        self,
        thresholds: dict[HealthCategory, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._thresholds = dict(DEFAULT_THRESHOLDS)
        if thresholds:
            self._thresholds.update(thresholds)
        self._clock = clock
        self._lock = threading.Lock()

        started = clock()
        self._last_touch: dict[HealthCategory, float] = {
            category: started for category in HealthCategory
        }

    def touch(self, category: HealthCategory | str) -> None:
        """Record activity for a category. Timestamps never move backward."""
        category = HealthCategory(category)
        now = self._clock()
        with self._lock:
            if now > self._last_touch[category]:
                self._last_touch[category] = now

    def age(self, category: HealthCategory | str) -> float:
        """Seconds since the category was last touched."""
        category = HealthCategory(category)
        with self._lock:
            last = self._last_touch[category]
        return max(0.0, self._clock() - last)

    def is_healthy(self, category: HealthCategory | str) -> bool:
        """True while the age is at or below the category threshold."""
        category = HealthCategory(category)
        return self.age(category) <= self._thresholds[category]

    def snapshot(self) -> dict[str, Any]:
        """
        Report overall and per-category health.

        Returns:
            {"status": "healthy"|"unhealthy",
             "details": {category: {"status": ..., "age": seconds}}}
        """
        now = self._clock()
        with self._lock:
            last_touch = dict(self._last_touch)

        details: dict[str, dict[str, Any]] = {}
        overall = HEALTHY
        for category in HealthCategory:
            age = max(0.0, now - last_touch[category])
            status = HEALTHY if age <= self._thresholds[category] else UNHEALTHY
            if status == UNHEALTHY:
                overall = UNHEALTHY
            details[category.value] = {"status": status, "age": round(age, 3)}

        return {"status": overall, "details": details}
