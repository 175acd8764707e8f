from __future__ import annotations

import asyncio
import math
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime

import structlog
from pydantic import BaseModel

from agenda.config import settings
from agenda.notifications.notifier import Notifier
from agenda.schemas.schedule import EventType, ScheduledEvent

log = structlog.get_logger()

# A reminder fires when minutes_until is in (lead - WINDOW, lead].
WINDOW_MINUTES = 2

TYPE_NAMES = {
    EventType.meeting: "会议",
    EventType.trip: "出行",
    EventType.general: "日程",
}


class Reminder(BaseModel):
    event_id: str
    lead_minutes: int
    title: str
    body: str
    tag: str
    require_interaction: bool = False


def minutes_until_start(event: ScheduledEvent, now: datetime) -> int | None:
    try:
        hours, _, minutes = event.start_time.partition(":")
        start = datetime.fromisoformat(event.date).replace(
            hour=int(hours or 0), minute=int(minutes or 0), second=0, microsecond=0
        )
    except ValueError:
        log.warning("notify.bad_event_time", event_id=event.id, date=event.date, start_time=event.start_time)
        return None
    return math.floor((start - now).total_seconds() / 60)


def time_description(minutes: int) -> str:
    if minutes >= 60:
        return f"{minutes // 60}小时后"
    return f"{minutes}分钟后"


class NotificationScheduler:
    """Periodic reminder check over the current events.

    The de-dup store maps event id to the lead times already fired; entries of
    events that have started or disappeared are pruned on every check, so its
    size is bounded by the number of pending events. It lives in memory only.
    """

    def __init__(
        self,
        notifier: Notifier,
        lead_minutes: Mapping[str, list[int]] | None = None,
    ) -> None:
        self._notifier = notifier
        self._lead_minutes = dict(settings.notification_lead_minutes if lead_minutes is None else lead_minutes)
        self._sent: dict[str, set[int]] = {}
        self._task: asyncio.Task | None = None
        self._unsupported_logged = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sent_count(self) -> int:
        return sum(len(leads) for leads in self._sent.values())

    def clear_sent(self) -> None:
        self._sent.clear()

    def leads_for(self, event_type: str) -> list[int]:
        return self._lead_minutes.get(event_type) or self._lead_minutes.get(EventType.general, [])

    def check_and_notify(self, events: Iterable[ScheduledEvent], now: datetime | None = None) -> list[Reminder]:
        """Dispatch due reminders and return them. Never awaits."""
        now = now or datetime.now()
        today = now.date().isoformat()
        fired: list[Reminder] = []
        pending: set[str] = set()

        for event in events:
            if event.date < today:
                continue
            minutes = minutes_until_start(event, now)
            if minutes is None or minutes < 0:
                continue
            pending.add(event.id)

            done = self._sent.setdefault(event.id, set())
            for lead in self.leads_for(event.type):
                if lead in done or not (lead - WINDOW_MINUTES < minutes <= lead):
                    continue
                reminder = self._build(event, lead, minutes)
                done.add(lead)
                self._dispatch(reminder)
                fired.append(reminder)

        self._prune(pending)
        return fired

    def _build(self, event: ScheduledEvent, lead: int, minutes: int) -> Reminder:
        type_name = TYPE_NAMES.get(event.type, "日程")
        return Reminder(
            event_id=event.id,
            lead_minutes=lead,
            title=f"{type_name}提醒",
            body=f"「{event.content}」将在{time_description(minutes)}开始\n时间：{event.start_time} - {event.end_time}",
            tag=f"{event.id}_{lead}",
            require_interaction=lead <= 5,
        )

    def _dispatch(self, reminder: Reminder) -> None:
        if not self._notifier.supported:
            if not self._unsupported_logged:
                log.warning("notify.unsupported")
                self._unsupported_logged = True
            return
        try:
            self._notifier.show(
                reminder.title,
                reminder.body,
                tag=reminder.tag,
                require_interaction=reminder.require_interaction,
            )
        except Exception:
            log.exception("notify.display_failed", tag=reminder.tag)

    def _prune(self, pending: set[str]) -> None:
        for event_id in [k for k in self._sent if k not in pending]:
            del self._sent[event_id]

    async def start(
        self,
        get_events: Callable[[], Iterable[ScheduledEvent]],
        interval_seconds: float | None = None,
    ) -> bool:
        """Start the periodic check, replacing any running one. Returns False when disabled."""
        await self.stop()

        if not self._notifier.supported:
            log.warning("notify.unsupported")
            self._unsupported_logged = True
            return False
        if not await self._notifier.request_permission():
            log.warning("notify.permission_denied")
            return False

        interval = settings.notification_check_interval_seconds if interval_seconds is None else interval_seconds
        self.check_and_notify(get_events())
        self._task = asyncio.create_task(self._loop(get_events, interval))
        log.info("notify.started", interval_seconds=interval)
        return True

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        log.info("notify.stopped")

    async def _loop(self, get_events: Callable[[], Iterable[ScheduledEvent]], interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.check_and_notify(get_events())
            except Exception:
                log.exception("notify.check_failed")
