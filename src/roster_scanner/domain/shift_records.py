from __future__ import annotations

import re
from datetime import date, datetime

from roster_scanner.domain.models import JobConfig, ParsedShift, ShiftRecord

_TIME_PATTERN = re.compile(r"^\d{1,2}:\d{2}$")
_MINUTES_PER_DAY = 24 * 60


def parse_time_to_minutes(value: str) -> int | None:
    """Parse an HH:MM string into minutes from midnight."""

    if not value or not _TIME_PATTERN.match(value.strip()):
        return None
    hours, minutes = (int(part) for part in value.strip().split(":"))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def add_hours_to_time(start: str, hours: float) -> str | None:
    """Return start + hours as HH:MM, wrapping past midnight."""

    start_minutes = parse_time_to_minutes(start)
    if start_minutes is None:
        return None
    total = (start_minutes + round(hours * 60)) % _MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def calculate_total_hours(start: str, end: str) -> float | None:
    start_minutes = parse_time_to_minutes(start)
    end_minutes = parse_time_to_minutes(end)
    if start_minutes is None or end_minutes is None:
        return None
    diff = end_minutes - start_minutes
    if diff < 0:
        diff += _MINUTES_PER_DAY
    return round(diff / 60, 2)


def parse_shift_date(value: str) -> date:
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return datetime.fromisoformat(text).date()


def is_weekend(value: date) -> bool:
    return value.weekday() >= 5


def build_shift_record(shift: ParsedShift, job: JobConfig | None) -> ShiftRecord:
    """Turn a confirmed parsed shift into the record handed to the shift store.

    Hours come from the extraction when present, otherwise from the job's
    weekday/weekend default. A missing end time is derived from the start
    time plus those hours.
    """

    if not shift.mapped_job_id:
        raise ValueError(f"Shift {shift.id} has no mapped job")
    shift_date = parse_shift_date(shift.date)
    note = f"Scanned from roster: {shift.roster_job_name}"
    if shift.start_time and shift.end_time:
        note = f"Scanned: {shift.start_time}-{shift.end_time}"
    hours = shift.total_hours or 0.0
    start_time = shift.start_time
    end_time = shift.end_time
    if job is not None:
        default_duration = (
            job.default_hours.weekend if is_weekend(shift_date) else job.default_hours.weekday
        )
        if not hours and default_duration > 0:
            hours = default_duration
        if start_time and not end_time and hours > 0:
            end_time = add_hours_to_time(start_time, hours) or end_time
    return ShiftRecord(
        id=shift.id,
        date=shift_date.isoformat(),
        job_id=shift.mapped_job_id,
        hours=hours,
        note=note,
        start_time=start_time,
        end_time=end_time,
    )


def build_shift_records(
    shifts: list[ParsedShift], job_configs: list[JobConfig]
) -> list[ShiftRecord]:
    jobs_by_id = {job.id: job for job in job_configs}
    return [
        build_shift_record(shift, jobs_by_id.get(shift.mapped_job_id or ""))
        for shift in shifts
        if shift.selected and shift.mapped_job_id
    ]
