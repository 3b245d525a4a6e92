"""
Trailing time-window counting shared by the brute-force tracker and the
session manager.

A window is re-evaluated relative to an anchor time ("now" for most callers)
on every query; there are no fixed calendar buckets.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import func


@dataclass(frozen=True)
class WindowCount:
    count: int
    threshold: int
    anchor: datetime

    @property
    def exceeded(self) -> bool:
        return self.count >= self.threshold


@dataclass(frozen=True)
class SlidingWindow:
    duration: timedelta
    threshold: int

    def __post_init__(self):
        if self.duration <= timedelta(0):
            raise ValueError("Window duration must be positive")
        if self.threshold < 1:
            raise ValueError("Window threshold must be at least 1")

    def cutoff(self, now: datetime) -> datetime:
        return now - self.duration

    def within(self, query, timestamp_column, now: datetime):
        """Restricts a query to rows whose timestamp falls in (now - duration, now]."""
        return query.filter(
            timestamp_column > self.cutoff(now),
            timestamp_column <= now,
        )

    def count(self, query, timestamp_column, now: datetime, distinct=None) -> int:
        query = self.within(query, timestamp_column, now)
        if distinct is not None:
            return query.with_entities(func.count(func.distinct(distinct))).scalar() or 0
        return query.count()

    def evaluate(self, query, timestamp_column, now: datetime, distinct=None, pending: int = 0) -> WindowCount:
        """
        Counts qualifying rows and compares against the threshold.
        `pending` adds events that are about to be written but are not in the
        store yet (e.g. the attempt currently being logged).
        """
        n = self.count(query, timestamp_column, now, distinct=distinct) + pending
        return WindowCount(count=n, threshold=self.threshold, anchor=now)

    def latest_breach(self, timestamps: Iterable[datetime]) -> Optional[WindowCount]:
        """
        In-memory scan: the latest timestamp whose own trailing window holds at
        least `threshold` events, or None if no window ever reached it.
        """
        ordered = sorted(timestamps)
        breach = None
        start = 0
        for end, ts in enumerate(ordered):
            while ordered[start] <= ts - self.duration:
                start += 1
            n = end - start + 1
            if n >= self.threshold:
                breach = WindowCount(count=n, threshold=self.threshold, anchor=ts)
        return breach
