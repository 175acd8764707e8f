"""Form field tables and typed partial records for the meeting and trip workflows.

Field keys are the camelCase names shared with the LLM prompt and the UI; the
pydantic records expose them as snake_case attributes with camelCase aliases.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Workflow = Literal["meeting", "trip"]
InputType = Literal["text", "textarea", "select", "multiselect", "datetime"]

WORKFLOWS: tuple[str, ...] = ("meeting", "trip")


@dataclass(frozen=True)
class FieldSpec:
    key: str
    label: str
    ask_prompt: str
    input_type: InputType = "text"
    required: bool = True
    options: tuple[str, ...] = field(default_factory=tuple)
    is_date: bool = False
    is_list: bool = False


MEETING_FIELDS: dict[str, FieldSpec] = {
    f.key: f
    for f in (
        FieldSpec("title", "会议主题", "请问这次会议的主题是什么?"),
        FieldSpec("date", "会议日期", "会议安排在哪一天?", "datetime", is_date=True),
        FieldSpec("startTime", "开始时间", "会议几点开始?", "datetime"),
        FieldSpec("endTime", "结束时间", '会议几点结束? (如不确定可说"1小时")', "datetime"),
        FieldSpec("location", "会议室地点", "会议在哪里举行?"),
        FieldSpec(
            "roomType",
            "会议室类型",
            "需要什么类型的会议室?",
            "select",
            required=False,
            options=("大型会议室", "中型会议室", "小型会议室", "培训室", "视频会议室", "线上会议"),
        ),
        FieldSpec("attendees", "参会人员", "有哪些参会人员?", "multiselect", is_list=True),
    )
}

TRIP_FIELDS: dict[str, FieldSpec] = {
    f.key: f
    for f in (
        FieldSpec("startDate", "出发日期", "什么时候出发?", "datetime", is_date=True),
        FieldSpec("startTime", "出发时间", "几点出发?", "datetime"),
        FieldSpec("endDate", "返回日期", "什么时候返回?", "datetime", is_date=True),
        FieldSpec("endTime", "返回时间", "几点返回?", "datetime"),
        FieldSpec("from", "出发地", "从哪里出发?"),
        FieldSpec("to", "目的地", "出差去哪里?"),
        FieldSpec(
            "transport",
            "出行方式",
            "选择什么交通方式?",
            "select",
            options=("飞机", "火车", "汽车", "轮船", "其他"),
        ),
        FieldSpec("reason", "出差事由", "出差事由是什么?", "textarea"),
    )
}

_FIELD_TABLES: dict[str, dict[str, FieldSpec]] = {
    "meeting": MEETING_FIELDS,
    "trip": TRIP_FIELDS,
}


def field_specs(workflow: str) -> dict[str, FieldSpec]:
    return _FIELD_TABLES[workflow]


def required_fields(workflow: str) -> list[str]:
    return [k for k, spec in _FIELD_TABLES[workflow].items() if spec.required]


def field_label(workflow: str, key: str) -> str:
    spec = _FIELD_TABLES.get(workflow, {}).get(key)
    return spec.label if spec else key


def date_fields(workflow: str) -> list[str]:
    return [k for k, spec in _FIELD_TABLES[workflow].items() if spec.is_date]


# ---------------------------------------------------------------------------
# Typed partial records
# ---------------------------------------------------------------------------

class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def values(self) -> dict[str, Any]:
        """Field values keyed by their camelCase field key."""
        return self.model_dump(by_alias=True, exclude={"workflow"})


class MeetingFields(_Record):
    workflow: Literal["meeting"] = "meeting"
    title: str | None = None
    date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    location: str | None = None
    room_type: str | None = None
    attendees: list[str] | None = None


class TripFields(_Record):
    workflow: Literal["trip"] = "trip"
    start_date: str | None = None
    start_time: str | None = None
    end_date: str | None = None
    end_time: str | None = None
    origin: str | None = Field(default=None, alias="from")
    destination: str | None = Field(default=None, alias="to")
    transport: str | None = None
    reason: str | None = None


StructuredRecord = Annotated[MeetingFields | TripFields, Field(discriminator="workflow")]

_RECORD_TYPES: dict[str, type[_Record]] = {"meeting": MeetingFields, "trip": TripFields}


def empty_record(workflow: str) -> MeetingFields | TripFields:
    return _RECORD_TYPES[workflow]()


def coerce_record(workflow: str, fields: Mapping[str, Any] | _Record | None) -> MeetingFields | TripFields:
    """Accept a typed record or a plain mapping keyed by field keys."""
    record_type = _RECORD_TYPES[workflow]
    if isinstance(fields, record_type):
        return fields
    return merge_fields(record_type(), dict(fields or {}))


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


_LIST_SPLIT = re.compile(r"[、,，;；/\s]+|和|与|及")


def split_names(value: str) -> list[str]:
    return [part.strip() for part in _LIST_SPLIT.split(value) if part and part.strip()]


def _coerce_value(spec: FieldSpec, value: Any) -> Any:
    if spec.is_list:
        if isinstance(value, str):
            return split_names(value)
        if isinstance(value, (list, tuple)):
            return [str(v).strip() for v in value if not is_missing(v)]
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return None


def merge_fields(record: MeetingFields | TripFields, extracted: Mapping[str, Any]) -> MeetingFields | TripFields:
    """Merge extracted values into a record and return the new record.

    Non-empty values overwrite, omitted or empty values never erase, unknown keys
    are dropped. Applying the same extraction twice gives the same record.
    """
    specs = _FIELD_TABLES[record.workflow]
    updates: dict[str, Any] = {}
    for key, raw in extracted.items():
        spec = specs.get(key)
        if spec is None:
            continue
        value = _coerce_value(spec, raw)
        if is_missing(value):
            continue
        updates[key] = value

    if not updates:
        return record
    data = {**record.values(), **updates}
    return type(record).model_validate(data)


def clear_fields(record: MeetingFields | TripFields, keys: Iterable[str]) -> MeetingFields | TripFields:
    """Return a copy of the record with the given fields emptied so they count as missing."""
    drop = set(keys)
    data = {key: value for key, value in record.values().items() if key not in drop}
    return type(record).model_validate(data)


# ---------------------------------------------------------------------------
# Form descriptors
# ---------------------------------------------------------------------------

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CompletionStatus(_CamelModel):
    completed: bool
    missing_fields: list[str] = Field(default_factory=list)
    completion_rate: float = Field(..., ge=0.0, le=1.0)


class FormFieldView(_CamelModel):
    name: str
    display_name: str
    current_value: Any = None
    required: bool = True
    input_type: InputType = "text"
    options: list[str] = Field(default_factory=list)


class TaskForm(_CamelModel):
    form_title: str
    workflow: str
    form_fields: list[FormFieldView] = Field(default_factory=list)
    completion_status: CompletionStatus
