"""Deterministic clean-up of extracted field values.

Order matters when reconciling a fresh extraction: durations are turned into an
end time first, then relative dates are pinned to calendar dates, then transport
words are mapped to enum tokens.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import date, timedelta
from typing import Any

import structlog

log = structlog.get_logger()

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")
CLOCK = re.compile(r"(\d{1,2})[:：](\d{2})")
DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2}[T ])")

_CN_DIGITS = {"零": 0, "一": 1, "二": 2, "两": 2, "三": 3, "四": 4, "五": 5, "六": 6, "七": 7, "八": 8, "九": 9}


def parse_cn_number(text: str) -> int | None:
    """Parse Arabic digits or a Chinese numeral up to 99 (e.g. "十二", "二十五")."""
    if text.isdigit():
        return int(text)
    if not text or any(ch not in _CN_DIGITS and ch != "十" for ch in text):
        return None
    if "十" not in text:
        return _CN_DIGITS[text] if len(text) == 1 else None
    tens, _, ones = text.partition("十")
    value = (_CN_DIGITS.get(tens, 0) if tens else 1) * 10
    if ones:
        if ones not in _CN_DIGITS:
            return None
        value += _CN_DIGITS[ones]
    return value


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

_CN_NUMERAL_BEFORE_UNIT = re.compile(r"([零一二两三四五六七八九十]+)(?=\s*个?\s*(?:半?小时|钟头|分钟|分))")
_HALF_HOUR = re.compile(r"^(?:半个?小时|half(?: an)? hour)$")
_N_AND_HALF = re.compile(r"(\d+)\s*个半\s*(?:小时|钟头)")
_HOURS = re.compile(r"(\d+(?:\.\d+)?)\s*个?\s*(?:小时|钟头|hours?|hrs?|h(?![a-z]))")
_MINUTES = re.compile(r"(\d+)\s*(?:分钟|分|minutes?|mins?|m(?![a-z]))")
_BARE_NUMBER = re.compile(r"^\d+(?:\.\d+)?$")


def parse_duration_minutes(value: Any) -> int | None:
    """Convert a duration expression to minutes.

    Bare numbers are hours. Returns None when nothing recognisable is found.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        minutes = round(float(value) * 60)
        return minutes if minutes > 0 else None

    text = str(value).strip().lower()
    if not text:
        return None
    text = _CN_NUMERAL_BEFORE_UNIT.sub(lambda m: str(parse_cn_number(m.group(1)) or m.group(1)), text)

    if _HALF_HOUR.match(text):
        return 30
    if text in ("an hour", "one hour"):
        return 60
    if _BARE_NUMBER.match(text):
        return parse_duration_minutes(float(text))

    total = 0
    half = _N_AND_HALF.search(text)
    if half:
        total += int(half.group(1)) * 60 + 30
    else:
        hours = _HOURS.search(text)
        if hours:
            total += round(float(hours.group(1)) * 60)
    minutes = _MINUTES.search(text)
    if minutes:
        total += int(minutes.group(1))
    return total or None


def add_minutes(start: str, minutes: int) -> str | None:
    """Add minutes to an ``HH:mm`` (optionally date-prefixed) time string.

    Hours wrap modulo 24; a ``YYYY-MM-DD`` / ``YYYY-MM-DDT`` prefix is kept as is.
    """
    match = CLOCK.search(start)
    if not match:
        return None
    hours = int(match.group(1))
    mins = int(match.group(2)) + minutes
    hours += mins // 60
    mins %= 60
    hours %= 24
    prefix = DATE_PREFIX.match(start)
    return f"{prefix.group(1) if prefix else ''}{hours:02d}:{mins:02d}"


def resolve_duration(extracted: Mapping[str, Any], current: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Replace a ``duration`` value with a derived ``endTime``; ``duration`` is always dropped."""
    result = dict(extracted)
    if "duration" not in result:
        return result

    duration = result.pop("duration")
    if result.get("endTime"):
        return result

    start = result.get("startTime") or (current or {}).get("startTime")
    if not start:
        log.debug("normalize.duration_without_start", duration=duration)
        return result

    minutes = parse_duration_minutes(duration)
    if not minutes:
        return result

    end = add_minutes(str(start), minutes)
    if end:
        result["endTime"] = end
    return result


# ---------------------------------------------------------------------------
# Relative dates
# ---------------------------------------------------------------------------

_WEEKDAYS_CN = {"一": 0, "二": 1, "三": 2, "四": 3, "五": 4, "六": 5, "日": 6, "天": 6}
_WEEKDAYS_EN = {
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3,
    "friday": 4, "saturday": 5, "sunday": 6,
}
_NEXT_WEEKDAY_CN = re.compile(r"下个?(?:周|星期|礼拜)([一二三四五六日天])")
_NEXT_WEEKDAY_EN = re.compile(r"next\s+(" + "|".join(_WEEKDAYS_EN) + r")")
_MONTH_DAY_CN = re.compile(r"(\d{1,2})\s*月\s*(\d{1,2})\s*[号日]?")
_DAY_OF_MONTH = re.compile(r"(\d{1,2}|[一二三四五六七八九十]{1,3})\s*[号日]|(\d{1,2})(?:st|nd|rd|th)\b")
_NEXT_MONTH = re.compile(r"下个?月|next month")


def next_week_day(today: date, weekday: int) -> date:
    """The given weekday (Monday=0) inside the calendar week after ``today``'s."""
    next_monday = today + timedelta(days=7 - today.weekday())
    return next_monday + timedelta(days=weekday)


def _month_offset(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def day_of_month(today: date, day: int, force_next_month: bool = False) -> date | None:
    """Day ``day`` of this month, or of the next month when it has already passed."""
    if not 1 <= day <= 31:
        return None
    offset = 1 if force_next_month or day < today.day else 0
    # Months without that day roll forward to the next month that has it.
    for extra in range(12):
        year, month = _month_offset(today.year, today.month, offset + extra)
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return None


def resolve_relative_date(value: str, today: date) -> str:
    """Pin a relative date expression to ``YYYY-MM-DD``; unknown text is returned unchanged."""
    text = value.strip()
    if ISO_DATE.match(text):
        return value
    lowered = text.lower()

    target: date | None = None
    if "大后天" in text or "three days from now" in lowered or "in three days" in lowered:
        target = today + timedelta(days=3)
    elif "后天" in text or "day after tomorrow" in lowered:
        target = today + timedelta(days=2)
    elif "明天" in text or "明日" in text or "tomorrow" in lowered:
        target = today + timedelta(days=1)
    elif "今天" in text or "今日" in text or "today" in lowered:
        target = today
    elif m := _NEXT_WEEKDAY_CN.search(text):
        target = next_week_day(today, _WEEKDAYS_CN[m.group(1)])
    elif m := _NEXT_WEEKDAY_EN.search(lowered):
        target = next_week_day(today, _WEEKDAYS_EN[m.group(1)])
    elif m := _MONTH_DAY_CN.search(text):
        month, day = int(m.group(1)), int(m.group(2))
        for year in (today.year, today.year + 1):
            try:
                candidate = date(year, month, day)
            except ValueError:
                break
            if candidate >= today:
                target = candidate
                break
    elif m := _DAY_OF_MONTH.search(lowered):
        raw = m.group(1) or m.group(2)
        day = parse_cn_number(raw)
        if day is not None:
            target = day_of_month(today, day, force_next_month=bool(_NEXT_MONTH.search(lowered)))

    if target is None:
        log.debug("normalize.unresolved_date", value=value)
        return value
    return target.isoformat()


def resolve_relative_dates(
    extracted: Mapping[str, Any],
    date_keys: Iterable[str],
    today: date | None = None,
) -> dict[str, Any]:
    result = dict(extracted)
    today = today or date.today()
    for key in date_keys:
        value = result.get(key)
        if isinstance(value, str) and value.strip():
            result[key] = resolve_relative_date(value, today)
    return result


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

TRANSPORT_WORDS: dict[str, str] = {
    "飞机": "flight",
    "航班": "flight",
    "坐飞机": "flight",
    "火车": "train",
    "高铁": "train",
    "动车": "train",
    "汽车": "car",
    "开车": "car",
    "自驾": "car",
    "大巴": "car",
    "轮船": "ship",
    "船": "ship",
    "其他": "other",
    "flight": "flight",
    "plane": "flight",
    "airplane": "flight",
    "train": "train",
    "car": "car",
    "bus": "car",
    "ship": "ship",
    "boat": "ship",
    "ferry": "ship",
    "other": "other",
}


def normalize_transport(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return TRANSPORT_WORDS.get(value.strip().lower(), value)


def reconcile(
    extracted: Mapping[str, Any],
    current: Mapping[str, Any] | None,
    date_keys: Iterable[str],
    today: date | None = None,
) -> dict[str, Any]:
    """Duration first, then relative dates, then transport mapping."""
    result = resolve_duration(extracted, current)
    result = resolve_relative_dates(result, date_keys, today)
    if "transport" in result:
        result["transport"] = normalize_transport(result["transport"])
    return result
