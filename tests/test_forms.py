"""Tests for typed records, merging and form completion tracking."""

from datetime import date

import pytest
from pydantic import TypeAdapter

from agenda.forms.fields import (
    MeetingFields,
    StructuredRecord,
    TripFields,
    clear_fields,
    coerce_record,
    empty_record,
    merge_fields,
    split_names,
)
from agenda.forms.tracker import FormCompletionTracker, MeetingFormTracker, TripFormTracker, tracker_for

FULL_MEETING = {
    "title": "周会",
    "date": "2026-02-12",
    "startTime": "10:00",
    "endTime": "11:00",
    "location": "A301会议室",
    "attendees": ["张三", "李四"],
}

FULL_TRIP = {
    "startDate": "2026-02-12",
    "startTime": "08:00",
    "endDate": "2026-02-14",
    "endTime": "18:00",
    "from": "北京",
    "to": "上海",
    "transport": "train",
    "reason": "客户拜访",
}


def test_discriminated_union_picks_record_type():
    adapter = TypeAdapter(StructuredRecord)
    record = adapter.validate_python({"workflow": "trip", "from": "北京"})
    assert isinstance(record, TripFields)
    assert record.origin == "北京"
    assert isinstance(adapter.validate_python({"workflow": "meeting"}), MeetingFields)


def test_record_values_use_field_keys():
    record = coerce_record("trip", {"from": "北京", "to": "上海", "startDate": "2026-02-12"})
    values = record.values()
    assert values["from"] == "北京"
    assert values["to"] == "上海"
    assert values["startDate"] == "2026-02-12"
    assert "workflow" not in values


def test_merge_overwrites_with_non_empty_only():
    record = coerce_record("meeting", {"title": "周会", "location": "A301"})
    merged = merge_fields(record, {"title": "月会", "location": "  ", "attendees": []})
    assert merged.title == "月会"
    assert merged.location == "A301"
    assert merged.attendees is None


def test_merge_drops_unknown_keys_and_splits_lists():
    merged = merge_fields(empty_record("meeting"), {"speaker": "x", "attendees": "张三，李四和王五"})
    assert merged.attendees == ["张三", "李四", "王五"]
    assert "speaker" not in merged.values()


def test_merge_is_idempotent():
    extraction = {"title": "评审", "startTime": "15:00", "attendees": ["张三"]}
    once = merge_fields(empty_record("meeting"), extraction)
    twice = merge_fields(once, extraction)
    assert once == twice
    assert twice.attendees == ["张三"]


def test_merge_does_not_mutate_input():
    record = empty_record("trip")
    merge_fields(record, {"from": "北京"})
    assert record.origin is None


def test_split_names():
    assert split_names("张三、李四,王五 赵六") == ["张三", "李四", "王五", "赵六"]


def test_meeting_completion_five_of_six():
    fields = dict(FULL_MEETING, attendees=[])
    status = MeetingFormTracker().evaluate_completion(fields)
    assert not status.completed
    assert status.missing_fields == ["attendees"]
    assert status.completion_rate == pytest.approx(5 / 6)


def test_missing_fields_follow_canonical_order():
    status = TripFormTracker().evaluate_completion({"reason": "x", "to": "上海", "transport": "  "})
    assert status.missing_fields == ["startDate", "startTime", "endDate", "endTime", "from", "transport"]


def test_optional_room_type_not_required():
    status = MeetingFormTracker().evaluate_completion(FULL_MEETING)
    assert status.completed
    assert status.completion_rate == 1.0


def test_task_form_descriptor():
    form = tracker_for("meeting").generate_task_form({"title": "周会"})
    assert form.form_title == "会议信息完善 - 周会"
    fields = {f.name: f for f in form.form_fields}
    assert fields["date"].input_type == "datetime"
    assert fields["attendees"].input_type == "multiselect"
    assert fields["roomType"].input_type == "select"
    assert not fields["roomType"].required
    assert fields["title"].current_value == "周会"
    assert form.completion_status.missing_fields[0] == "date"

    dumped = form.model_dump(by_alias=True)
    assert "formFields" in dumped
    assert dumped["completionStatus"]["completionRate"] == pytest.approx(1 / 6)


def test_trip_form_title():
    form = tracker_for("trip").generate_task_form({"from": "北京"})
    assert form.form_title == "出差申请 - 北京 到 未指定"
    assert {f.name: f for f in form.form_fields}["reason"].input_type == "textarea"


def test_next_question_skips_asked_fields():
    tracker = MeetingFormTracker()
    assert tracker.next_question({}) == "请问这次会议的主题是什么?"
    assert tracker.next_field({}, asked={"title"}) == "date"


def test_next_question_end_time_mentions_duration():
    question = MeetingFormTracker().next_question({"title": "周会", "date": "2026-02-12", "startTime": "10:00"})
    assert "会议时长" in question


def test_next_question_lists_options():
    question = TripFormTracker().ask_prompt("transport")
    assert question.endswith("(飞机/火车/汽车/轮船/其他)")


def test_next_question_summarises_when_all_asked():
    tracker = MeetingFormTracker()
    question = tracker.next_question({"title": "周会"}, asked=set(tracker.required))
    assert question.startswith("📋 还需要完善以下信息：会议日期")


def test_format_status():
    tracker = MeetingFormTracker()
    text = tracker.format_status(tracker.evaluate_completion(dict(FULL_MEETING, attendees=[])))
    assert text == "📋 还需要完善以下信息：参会人员 (83% 完成)"
    assert tracker.format_status(tracker.evaluate_completion(FULL_MEETING)).startswith("✅")


def test_meeting_schedule_defaults():
    event = MeetingFormTracker().create_schedule_from_form({})
    assert event.id.startswith("MTG-")
    assert event.content == "会议"
    assert event.date == date.today().isoformat()
    assert (event.start_time, event.end_time) == ("09:00", "10:00")
    assert event.location == "待分配"
    assert event.attendees == []


def test_trip_schedule_from_form():
    event = TripFormTracker().create_schedule_from_form(FULL_TRIP, schedule_id="TRIP-1")
    assert event.id == "TRIP-1"
    assert event.content == "出差: 北京 → 上海"
    assert event.location == "上海"
    assert event.end_date == "2026-02-14"
    assert event.transport == "train"
    assert "交通方式：火车" in TripFormTracker().confirmation_prompt(event)


def test_trip_schedule_defaults():
    event = TripFormTracker().create_schedule_from_form({})
    assert event.content == "出差: 未指定 → 未指定"
    assert (event.start_time, event.end_time) == ("09:00", "18:00")
    assert event.location == "待定"


def test_meeting_confirmation_prompt():
    tracker = MeetingFormTracker()
    text = tracker.confirmation_prompt(tracker.create_schedule_from_form(FULL_MEETING))
    assert "主题：周会" in text
    assert "时间：2026-02-12 10:00-11:00" in text
    assert "参会人：张三、李四" in text


def test_valid_trip_has_no_errors():
    assert TripFormTracker().validate_form(FULL_TRIP) == []


def test_trip_same_origin_and_destination():
    errors = TripFormTracker().validate_form(dict(FULL_TRIP, to=" 北京 ", **{"from": "北京"}))
    assert errors == ["出发地和目的地不能相同"]


def test_trip_end_must_follow_start():
    errors = TripFormTracker().validate_form(dict(FULL_TRIP, endDate="2026-02-12", endTime="08:00"))
    assert errors == ["结束时间必须晚于开始时间"]


def test_trip_presence_errors():
    errors = TripFormTracker().validate_form({"from": "北京", "to": "北京"})
    assert "目的地不能为空" not in errors
    assert "开始日期不能为空" in errors
    assert "出差说明不能为空" in errors
    assert errors[-1] == "出发地和目的地不能相同"


def test_meeting_has_no_cross_field_validation():
    assert MeetingFormTracker().validate_form({}) == []


def test_unknown_workflow():
    assert tracker_for("dinner") is None


def test_tracker_base_is_abstract():
    with pytest.raises(TypeError):
        FormCompletionTracker()


def test_trip_invalid_fields():
    tracker = TripFormTracker()
    assert tracker.invalid_fields(FULL_TRIP) == []
    assert tracker.invalid_fields(dict(FULL_TRIP, to="北京")) == ["to"]
    assert tracker.invalid_fields(dict(FULL_TRIP, endDate="2026-02-12", endTime="08:00")) == ["endDate", "endTime"]
    assert MeetingFormTracker().invalid_fields(FULL_MEETING) == []


def test_clear_fields_reopens_keys():
    record = coerce_record("trip", FULL_TRIP)
    cleared = clear_fields(record, ["to", "endTime"])
    assert cleared.destination is None
    assert cleared.end_time is None
    assert cleared.origin == "北京"
    assert record.destination == "上海"
    assert TripFormTracker().evaluate_completion(cleared).missing_fields == ["endTime", "to"]
