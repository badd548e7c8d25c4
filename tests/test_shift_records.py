import pytest

from roster_scanner.domain.models import DefaultHours, JobConfig, ParsedShift
from roster_scanner.domain.shift_records import (
    add_hours_to_time,
    build_shift_record,
    build_shift_records,
    calculate_total_hours,
    parse_time_to_minutes,
)

JOB = JobConfig(id="job-1", name="Barista", default_hours=DefaultHours(weekday=7.5, weekend=6))


def test_parse_time_to_minutes() -> None:
    assert parse_time_to_minutes("09:30") == 570
    assert parse_time_to_minutes("9:05") == 545
    assert parse_time_to_minutes("24:00") is None
    assert parse_time_to_minutes("noon") is None


def test_add_hours_wraps_past_midnight() -> None:
    assert add_hours_to_time("09:00", 7.5) == "16:30"
    assert add_hours_to_time("22:00", 4) == "02:00"


def test_calculate_total_hours_handles_overnight() -> None:
    assert calculate_total_hours("09:00", "17:30") == 8.5
    assert calculate_total_hours("22:00", "06:00") == 8.0


def test_end_time_derived_from_weekday_default() -> None:
    shift = ParsedShift(
        id="s1",
        date="2025-03-03",
        roster_job_name="FOH",
        mapped_job_id="job-1",
        start_time="09:00",
    )

    record = build_shift_record(shift, JOB)

    assert record.hours == 7.5
    assert record.end_time == "16:30"
    assert record.note == "Scanned from roster: FOH"


def test_weekend_default_is_used_on_saturday() -> None:
    shift = ParsedShift(id="s1", date="2025-03-08", roster_job_name="FOH", mapped_job_id="job-1")

    record = build_shift_record(shift, JOB)

    assert record.hours == 6
    assert record.end_time is None


def test_extracted_times_are_kept() -> None:
    shift = ParsedShift(
        id="s1",
        date="2025-03-03",
        roster_job_name="FOH",
        mapped_job_id="job-1",
        start_time="10:00",
        end_time="14:00",
        total_hours=4,
    )

    record = build_shift_record(shift, JOB)

    assert record.hours == 4
    assert record.end_time == "14:00"
    assert record.note == "Scanned: 10:00-14:00"


def test_no_end_time_without_hours() -> None:
    shift = ParsedShift(
        id="s1",
        date="2025-03-03",
        roster_job_name="FOH",
        mapped_job_id="job-1",
        start_time="09:00",
    )

    record = build_shift_record(shift, JobConfig(id="job-1", name="Barista"))

    assert record.hours == 0
    assert record.end_time is None


def test_unmapped_shift_is_rejected() -> None:
    shift = ParsedShift(id="s1", date="2025-03-03", roster_job_name="FOH")

    with pytest.raises(ValueError):
        build_shift_record(shift, JOB)


def test_build_shift_records_skips_deselected_and_unmapped() -> None:
    shifts = [
        ParsedShift(id="a", date="2025-03-03", roster_job_name="FOH", mapped_job_id="job-1"),
        ParsedShift(
            id="b",
            date="2025-03-04",
            roster_job_name="FOH",
            mapped_job_id="job-1",
            selected=False,
        ),
        ParsedShift(id="c", date="2025-03-05", roster_job_name="Bar"),
    ]

    records = build_shift_records(shifts, [JOB])

    assert [record.id for record in records] == ["a"]
