from __future__ import annotations

from datetime import date, timedelta

import structlog

from agenda.schemas.schedule import ScheduledEvent

log = structlog.get_logger()


class ScheduleStore:
    """In-memory event list shared by the dispatcher and the notification scheduler."""

    def __init__(self) -> None:
        self._events: dict[str, ScheduledEvent] = {}

    def add(self, event: ScheduledEvent) -> ScheduledEvent:
        self._events[event.id] = event
        log.info("schedule.added", event_id=event.id, type=event.type, date=event.date)
        return event

    def get(self, event_id: str) -> ScheduledEvent | None:
        return self._events.get(event_id)

    def remove(self, event_id: str) -> bool:
        return self._events.pop(event_id, None) is not None

    def list(self) -> list[ScheduledEvent]:
        return sorted(self._events.values(), key=lambda e: (e.date, e.start_time))

    def upcoming(self, days: int = 7, today: date | None = None) -> list[ScheduledEvent]:
        start = today or date.today()
        end = start + timedelta(days=days)
        return [e for e in self.list() if start.isoformat() <= e.date <= end.isoformat()]
