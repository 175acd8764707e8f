"""Rule-based field extraction used when the LLM is unavailable or returns nothing.

Values are returned raw (relative dates, durations, transport words) and go
through the same reconciliation as LLM output.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

import structlog

from agenda.core.normalize import parse_cn_number
from agenda.forms.fields import field_specs, split_names

log = structlog.get_logger()

_DATE_TOKEN = re.compile(
    r"\d{4}-\d{2}-\d{2}"
    r"|大后天|后天|明天|明日|今天|今日"
    r"|下个?(?:周|星期|礼拜)[一二三四五六日天]"
    r"|\d{1,2}\s*月\s*\d{1,2}\s*[号日]?"
    r"|(?:下个?月)?(?:\d{1,2}|[一二三四五六七八九十]{1,3})\s*[号日]"
    r"|day after tomorrow|tomorrow|today"
    r"|next\s+(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday)",
    re.IGNORECASE,
)

_TIME = re.compile(
    r"(?P<period>上午|下午|晚上|凌晨|中午|早上|傍晚)?\s*"
    r"(?P<hour>\d{1,2}|[零一二两三四五六七八九十]{1,3})\s*"
    r"(?:[:：](?P<minute>\d{2})|点钟?(?P<cnmin>半|一刻|三刻|\d{1,2}|[零一二两三四五六七八九十]{1,3})?分?)"
    r"(?:\s*(?P<ampm>am|pm))?",
    re.IGNORECASE,
)
_TIME_EN = re.compile(r"\b(?P<hour>\d{1,2})\s*(?P<ampm>am|pm)\b", re.IGNORECASE)

_LATE_PERIODS = ("下午", "晚上", "傍晚")
_EARLY_PERIODS = ("上午", "凌晨", "早上")

_DURATION = re.compile(
    r"(?:\d+(?:\.\d+)?|[一二两三四五六七八九十]+)\s*个?半?\s*(?:小时|钟头|分钟|hours?|minutes?|mins?)"
    r"|半个?小时|half(?: an)? hour",
    re.IGNORECASE,
)

_MEETING_TITLE = re.compile(
    r"(?:部门|项目|团队|周|月|每日|每周|季度|年度)?"
    r"(?:例会|会议|讨论会?|复盘|沟通会?|碰头会?|站会|晨会|评审|汇报|分享会?|培训)"
)

_LOCATION = re.compile(
    r"([A-Za-z0-9一-龥]{0,8}会议室)"
    r"|在([^,，。!！?？\s]{2,12}?)(?:开会|见面|举行|碰头|开)"
    r"|\b([A-Z]\d{3})\b"
)

_ATTENDEES = re.compile(
    r"(?:和|跟|与|通知|叫上|邀请)\s*([^,，.。!！?？]+?)"
    r"(?:一起|开会|讨论|沟通|聊|见面|碰头|开个?会|$|[,，.。!！?？])"
)
_ATTENDEES_EN = re.compile(r"\bwith\s+([A-Za-z][A-Za-z ,&]*?)(?=\s+(?:about|at|on|in|tomorrow|today|next)\b|[.!?]|$)")
_ATTENDEE_STOPWORDS = {"我", "你", "一下", "的", "大家", "他们", "我们"}

_ROUTE = re.compile(
    r"从([^到去至\s,，。]+)[到至去]([^\s,，。]+?)(?:出差|工作|出行|开会|办事|拜访|$|[,，。\s])"
)
_DESTINATION = re.compile(r"去([^\s,，。]+?)(?:出差|工作|出行|开会|办事|拜访)")
_ROUTE_EN = re.compile(
    r"\bfrom\s+([A-Za-z][A-Za-z ]*?)\s+to\s+([A-Za-z][A-Za-z ]*?)(?=\s+(?:on|at|for|by|tomorrow|today|next)\b|[,.]|$)",
    re.IGNORECASE,
)

_TRANSPORT_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"飞机|航班|飞|flight|plane|fly", re.IGNORECASE), "flight"),
    (re.compile(r"火车|高铁|动车|train", re.IGNORECASE), "train"),
    (re.compile(r"船|轮渡|ferry|ship|boat", re.IGNORECASE), "ship"),
    (re.compile(r"打车|专车|自驾|开车|大巴|汽车|\bcar\b|\bdrive\b|\bbus\b", re.IGNORECASE), "car"),
)


def extract_dates(text: str) -> list[str]:
    return [m.group(0).strip() for m in _DATE_TOKEN.finditer(text)]


def _hour_minute(match: re.Match[str]) -> tuple[int, int] | None:
    hour = parse_cn_number(match.group("hour"))
    if hour is None:
        return None

    minute = 0
    if match.groupdict().get("minute"):
        minute = int(match.group("minute"))
    elif cnmin := match.groupdict().get("cnmin"):
        if cnmin == "半":
            minute = 30
        elif cnmin == "一刻":
            minute = 15
        elif cnmin == "三刻":
            minute = 45
        else:
            minute = parse_cn_number(cnmin) or 0

    period = match.groupdict().get("period") or ""
    ampm = (match.group("ampm") or "").lower()
    if (period in _LATE_PERIODS or ampm == "pm") and hour < 12:
        hour += 12
    elif period == "中午" and hour < 11:
        hour += 12
    elif (period in _EARLY_PERIODS or ampm == "am") and hour == 12:
        hour = 0

    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def extract_times(text: str) -> list[str]:
    """All clock times in order of appearance, as ``HH:mm``.

    A later time without its own period inherits an afternoon period from the
    first one ("下午3点到5点" gives 15:00 and 17:00).
    """
    matches = sorted(
        [*_TIME.finditer(text), *_TIME_EN.finditer(text)],
        key=lambda m: m.start(),
    )
    times: list[str] = []
    first_late = False
    seen_spans: list[tuple[int, int]] = []
    for match in matches:
        if any(s <= match.start() < e for s, e in seen_spans):
            continue
        seen_spans.append(match.span())
        parsed = _hour_minute(match)
        if parsed is None:
            continue
        hour, minute = parsed
        has_period = bool(match.groupdict().get("period") or match.group("ampm"))
        if not times:
            first_late = hour >= 12 and has_period
        elif first_late and not has_period and hour < 12:
            hour += 12
        times.append(f"{hour:02d}:{minute:02d}")
    return times


def extract_duration(text: str) -> str | None:
    match = _DURATION.search(text)
    return match.group(0) if match else None


def extract_transport(text: str) -> str | None:
    for pattern, token in _TRANSPORT_PATTERNS:
        if pattern.search(text):
            return token
    return None


def extract_attendees(text: str) -> list[str]:
    match = _ATTENDEES.search(text) or _ATTENDEES_EN.search(text)
    if not match:
        return []
    names = split_names(match.group(1).replace("&", ","))
    return [n for n in names if n not in _ATTENDEE_STOPWORDS and n.lower() != "and"]


def extract_route(text: str) -> tuple[str | None, str | None]:
    if match := _ROUTE.search(text):
        return match.group(1).strip(), match.group(2).strip()
    if match := _ROUTE_EN.search(text):
        return match.group(1).strip(), match.group(2).strip()
    if match := _DESTINATION.search(text):
        return None, match.group(1).strip()
    return None, None


def extract_location(text: str) -> str | None:
    match = _LOCATION.search(text)
    if not match:
        return None
    return next(g for g in match.groups() if g)


def extract_meeting_title(text: str) -> str | None:
    match = _MEETING_TITLE.search(text)
    return match.group(0) if match else None


def _meeting_candidates(text: str) -> dict[str, Any]:
    found: dict[str, Any] = {}
    dates = extract_dates(text)
    times = extract_times(text)
    if dates:
        found["date"] = dates[0]
    if times:
        found["startTime"] = times[0]
    if len(times) > 1:
        found["endTime"] = times[1]
    if duration := extract_duration(text):
        found["duration"] = duration
    if title := extract_meeting_title(text):
        found["title"] = title
    if location := extract_location(text):
        found["location"] = location
    if attendees := extract_attendees(text):
        found["attendees"] = attendees
    return found


def _trip_candidates(text: str) -> dict[str, Any]:
    found: dict[str, Any] = {}
    dates = extract_dates(text)
    times = extract_times(text)
    if dates:
        found["startDate"] = dates[0]
    if len(dates) > 1:
        found["endDate"] = dates[1]
    if times:
        found["startTime"] = times[0]
    if len(times) > 1:
        found["endTime"] = times[1]
    origin, destination = extract_route(text)
    if origin:
        found["from"] = origin
    if destination:
        found["to"] = destination
    if transport := extract_transport(text):
        found["transport"] = transport
    return found


def rule_based_extract(
    workflow: str,
    text: str,
    missing_fields: Iterable[str],
    asked_field: str | None = None,
) -> dict[str, Any]:
    """Extract what plain patterns can find, limited to the missing fields.

    When the user is answering a specific question, a single date or time is
    attributed to the asked field, and a free-text field takes the whole answer.
    """
    missing = list(missing_fields)
    candidates = _meeting_candidates(text) if workflow == "meeting" else _trip_candidates(text)
    specs = field_specs(workflow)

    spec = specs.get(asked_field) if asked_field else None
    if spec is not None:
        if spec.is_date:
            dates = extract_dates(text)
            if len(dates) == 1:
                for key in specs:
                    if specs[key].is_date:
                        candidates.pop(key, None)
                candidates[spec.key] = dates[0]
        elif spec.key in ("startTime", "endTime"):
            times = extract_times(text)
            if len(times) == 1:
                candidates.pop("startTime", None)
                candidates.pop("endTime", None)
                candidates.pop("duration", None)
                candidates[spec.key] = times[0]
        elif spec.key not in candidates:
            if spec.is_list:
                candidates[spec.key] = extract_attendees(text) or split_names(text)
            else:
                candidates[spec.key] = text.strip()

    wanted = set(missing)
    if "endTime" in wanted:
        wanted.add("duration")
    result = {k: v for k, v in candidates.items() if k in wanted}
    log.debug("heuristics.extracted", workflow=workflow, fields=sorted(result))
    return result
