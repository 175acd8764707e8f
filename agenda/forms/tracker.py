from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Collection, Mapping
from datetime import date, datetime
from typing import Any, cast

import structlog

from agenda.forms.fields import (
    CompletionStatus,
    FieldSpec,
    FormFieldView,
    MeetingFields,
    TaskForm,
    TripFields,
    coerce_record,
    field_specs,
    is_missing,
    required_fields,
)
from agenda.schemas.schedule import EventType, ScheduledEvent, TransportMode, new_event_id

log = structlog.get_logger()

FieldsInput = Mapping[str, Any] | MeetingFields | TripFields | None

TRANSPORT_LABELS = {
    TransportMode.flight: "飞机",
    TransportMode.train: "火车",
    TransportMode.car: "汽车",
    TransportMode.ship: "轮船",
    TransportMode.other: "其他",
}


class FormCompletionTracker(ABC):
    """Completion bookkeeping for one workflow's form.

    Missing fields are always recomputed from the current values; nothing is
    cached between calls.
    """

    workflow: str = ""
    event_type: EventType = EventType.general
    ready_message: str = ""

    @property
    def specs(self) -> dict[str, FieldSpec]:
        return field_specs(self.workflow)

    @property
    def required(self) -> list[str]:
        return required_fields(self.workflow)

    def values(self, fields: FieldsInput) -> dict[str, Any]:
        return coerce_record(self.workflow, fields).values()

    def evaluate_completion(self, fields: FieldsInput) -> CompletionStatus:
        values = self.values(fields)
        missing = [key for key in self.required if is_missing(values.get(key))]
        total = len(self.required)
        rate = (total - len(missing)) / total if total else 1.0
        return CompletionStatus(completed=not missing, missing_fields=missing, completion_rate=rate)

    @abstractmethod
    def form_title(self, values: Mapping[str, Any]) -> str:
        """Heading shown above the form."""

    def generate_task_form(self, fields: FieldsInput) -> TaskForm:
        values = self.values(fields)
        views = [
            FormFieldView(
                name=key,
                display_name=spec.label,
                current_value=values.get(key),
                required=spec.required,
                input_type=spec.input_type,
                options=list(spec.options),
            )
            for key, spec in self.specs.items()
        ]
        return TaskForm(
            form_title=self.form_title(values),
            workflow=self.workflow,
            form_fields=views,
            completion_status=self.evaluate_completion(values),
        )

    def next_field(self, fields: FieldsInput, asked: Collection[str] = ()) -> str | None:
        """First missing field that has not been asked yet."""
        for key in self.evaluate_completion(fields).missing_fields:
            if key not in asked:
                return key
        return None

    def ask_prompt(self, key: str, fields: FieldsInput = None) -> str:
        spec = self.specs.get(key)
        if spec is None:
            return f"请提供 {key}"
        if spec.options:
            return f"{spec.ask_prompt} ({'/'.join(spec.options)})"
        return spec.ask_prompt

    def next_question(self, fields: FieldsInput, asked: Collection[str] = ()) -> str:
        status = self.evaluate_completion(fields)
        if status.completed:
            return self.ready_message
        key = self.next_field(fields, asked)
        if key is None:
            return self.format_status(status)
        return self.ask_prompt(key, fields)

    def format_status(self, status: CompletionStatus) -> str:
        if status.completed:
            return f"✅ {self.ready_message}"
        names = "、".join(self.specs[k].label if k in self.specs else k for k in status.missing_fields)
        return f"📋 还需要完善以下信息：{names} ({round(status.completion_rate * 100)}% 完成)"

    @abstractmethod
    def confirmation_prompt(self, event: ScheduledEvent) -> str:
        """Summary the user confirms before submitting."""

    @abstractmethod
    def create_schedule_from_form(self, fields: FieldsInput, schedule_id: str | None = None) -> ScheduledEvent:
        """Build the event, filling anything still missing with defaults."""

    def validate_form(self, fields: FieldsInput) -> list[str]:
        """Human readable problems with the record; empty when it can be submitted."""
        return []

    def invalid_fields(self, fields: FieldsInput) -> list[str]:
        """Keys whose values break a cross-field rule and must be asked again."""
        return []


class MeetingFormTracker(FormCompletionTracker):
    workflow = "meeting"
    event_type = EventType.meeting
    ready_message = "会议信息已完整，可以创建日程"

    def form_title(self, values: Mapping[str, Any]) -> str:
        return f"会议信息完善 - {values.get('title') or '未命名会议'}"

    def ask_prompt(self, key: str, fields: FieldsInput = None) -> str:
        if key == "endTime" and not is_missing(self.values(fields).get("startTime")):
            return f"{self.specs[key].ask_prompt} 或者说明会议时长（如\"1小时\"、\"2小时\"）"
        return super().ask_prompt(key, fields)

    def create_schedule_from_form(self, fields: FieldsInput, schedule_id: str | None = None) -> ScheduledEvent:
        record = cast(MeetingFields, coerce_record(self.workflow, fields))
        return ScheduledEvent(
            id=schedule_id or new_event_id(self.event_type),
            content=record.title or "会议",
            date=record.date or date.today().isoformat(),
            start_time=record.start_time or "09:00",
            end_time=record.end_time or "10:00",
            type=self.event_type,
            location=record.location or "待分配",
            attendees=record.attendees or [],
            room_type=record.room_type,
        )

    def confirmation_prompt(self, event: ScheduledEvent) -> str:
        attendees = "、".join(event.attendees) if event.attendees else "未指定"
        return (
            "📋 会议信息确认：\n"
            f"主题：{event.content}\n"
            f"时间：{event.date} {event.start_time}-{event.end_time}\n"
            f"地点：{event.location}\n"
            f"参会人：{attendees}\n\n"
            '是否需要发送会议通知给参会人员？(回复"确认"发送通知，"跳过"暂不通知)'
        )


class TripFormTracker(FormCompletionTracker):
    workflow = "trip"
    event_type = EventType.trip
    ready_message = "出差申请信息已完整，可以提交"

    def form_title(self, values: Mapping[str, Any]) -> str:
        return f"出差申请 - {values.get('from') or '未指定'} 到 {values.get('to') or '未指定'}"

    def create_schedule_from_form(self, fields: FieldsInput, schedule_id: str | None = None) -> ScheduledEvent:
        record = cast(TripFields, coerce_record(self.workflow, fields))
        return ScheduledEvent(
            id=schedule_id or new_event_id(self.event_type),
            content=f"出差: {record.origin or '未指定'} → {record.destination or '未指定'}",
            date=record.start_date or date.today().isoformat(),
            start_time=record.start_time or "09:00",
            end_time=record.end_time or "18:00",
            end_date=record.end_date,
            type=self.event_type,
            location=record.destination or "待定",
            transport=record.transport,
            reason=record.reason,
            origin=record.origin,
        )

    def confirmation_prompt(self, event: ScheduledEvent) -> str:
        transport = "未指定"
        if event.transport:
            try:
                transport = TRANSPORT_LABELS[TransportMode(event.transport)]
            except ValueError:
                transport = event.transport
        return (
            "📋 出差信息确认：\n"
            f"出发地：{event.origin or '未指定'}\n"
            f"目的地：{event.location}\n"
            f"时间：{event.date} {event.start_time} 至 {event.end_date or event.date} {event.end_time}\n"
            f"交通方式：{transport}\n"
            f"出差说明：{event.reason or ''}\n\n"
            '是否确认提交出差申请？(回复"确认"提交申请)'
        )

    def validate_form(self, fields: FieldsInput) -> list[str]:
        record = cast(TripFields, coerce_record(self.workflow, fields))
        errors: list[str] = []

        if is_missing(record.origin):
            errors.append("出发地不能为空")
        if is_missing(record.destination):
            errors.append("目的地不能为空")
        if is_missing(record.start_date):
            errors.append("开始日期不能为空")
        if is_missing(record.start_time):
            errors.append("开始时间不能为空")
        if is_missing(record.end_date):
            errors.append("结束日期不能为空")
        if is_missing(record.end_time):
            errors.append("结束时间不能为空")
        if is_missing(record.transport):
            errors.append("交通方式不能为空")
        if is_missing(record.reason):
            errors.append("出差说明不能为空")

        start = _timestamp(record.start_date, record.start_time)
        end = _timestamp(record.end_date, record.end_time)
        if start is not None and end is not None and end <= start:
            errors.append("结束时间必须晚于开始时间")

        if record.origin and record.destination and record.origin.strip() == record.destination.strip():
            errors.append("出发地和目的地不能相同")

        if errors:
            log.info("form.validation_failed", workflow=self.workflow, errors=errors)
        return errors

    def invalid_fields(self, fields: FieldsInput) -> list[str]:
        record = cast(TripFields, coerce_record(self.workflow, fields))
        keys: list[str] = []
        start = _timestamp(record.start_date, record.start_time)
        end = _timestamp(record.end_date, record.end_time)
        if start is not None and end is not None and end <= start:
            keys += ["endDate", "endTime"]
        if record.origin and record.destination and record.origin.strip() == record.destination.strip():
            keys.append("to")
        return keys


def _timestamp(day: str | None, clock: str | None) -> datetime | None:
    if not day or not clock:
        return None
    try:
        return datetime.fromisoformat(f"{day.strip()}T{clock.strip()}")
    except ValueError:
        return None


_TRACKERS: dict[str, FormCompletionTracker] = {
    "meeting": MeetingFormTracker(),
    "trip": TripFormTracker(),
}


def tracker_for(workflow: str) -> FormCompletionTracker | None:
    return _TRACKERS.get(workflow)
