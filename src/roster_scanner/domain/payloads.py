from __future__ import annotations

import copy
from typing import Any
from uuid import uuid4

from roster_scanner.domain.models import (
    EMPTY_OCR_RESULT,
    ExtractionResult,
    IdentifiedPerson,
    JobAlias,
    OcrResult,
    ParsedShift,
    QuestionGenerationResult,
    QuestionOption,
    RosterIdentifier,
    SmartQuestion,
)


def parse_ocr_result(data: object) -> OcrResult:
    if not isinstance(data, dict):
        return EMPTY_OCR_RESULT
    headers = data.get("headers")
    rows = data.get("rows")
    extracted = data.get("extractedShifts")
    metadata = data.get("metadata")
    raw_text = data.get("rawText")
    return OcrResult(
        success=data.get("success") is True,
        content_type=_optional_str(data.get("contentType")),
        table_type=_optional_str(data.get("tableType")),
        headers=tuple(headers) if isinstance(headers, list) else (),
        rows=(
            tuple(tuple(row) for row in rows if isinstance(row, list))
            if isinstance(rows, list)
            else ()
        ),
        extracted_shifts=(
            tuple(item for item in extracted if isinstance(item, dict))
            if isinstance(extracted, list)
            else None
        ),
        raw_text=raw_text if isinstance(raw_text, str) else None,
        metadata=metadata if isinstance(metadata, dict) else None,
        wire=copy.deepcopy(data),
    )


def parse_question(data: object) -> SmartQuestion | None:
    if not isinstance(data, dict):
        return None
    question_id = data.get("id")
    text = data.get("question")
    if not isinstance(question_id, str) or not isinstance(text, str):
        return None
    options: list[QuestionOption] = []
    raw_options = data.get("options")
    if isinstance(raw_options, list):
        for option in raw_options:
            if not isinstance(option, dict):
                continue
            label = option.get("label")
            value = option.get("value")
            if not label or not value:
                continue
            options.append(
                QuestionOption(
                    label=str(label),
                    value=str(value),
                    description=_optional_str(option.get("description")),
                )
            )
    question_type = data.get("type")
    return SmartQuestion(
        id=question_id,
        question=text,
        type=question_type if question_type in ("single_select", "text") else "single_select",
        options=tuple(options),
        required=data.get("required") is not False,
    )


def parse_question_generation(body: dict[str, Any]) -> QuestionGenerationResult:
    raw_questions = body.get("questions")
    questions: list[SmartQuestion] = []
    if isinstance(raw_questions, list):
        for item in raw_questions:
            question = parse_question(item)
            if question is not None:
                questions.append(question)
    return QuestionGenerationResult(
        questions=tuple(questions),
        ocr_data=parse_ocr_result(body.get("ocrData")),
        skip_to_extraction=body.get("skipToExtraction") is True,
        scans_used=_optional_int(body.get("scansUsed")),
        scan_limit=_optional_int(body.get("scanLimit")),
    )


def parse_parsed_shift(data: object) -> ParsedShift | None:
    if not isinstance(data, dict):
        return None
    date = data.get("date")
    if not isinstance(date, str) or not date.strip():
        return None
    roster_job_name = data.get("rosterJobName")
    if not isinstance(roster_job_name, str):
        roster_job_name = ""
    shift_id = data.get("id")
    mapped_job_id = data.get("mappedJobId")
    return ParsedShift(
        id=shift_id if isinstance(shift_id, str) and shift_id else str(uuid4()),
        date=date.strip(),
        roster_job_name=roster_job_name,
        mapped_job_id=mapped_job_id if isinstance(mapped_job_id, str) and mapped_job_id else None,
        selected=data.get("selected") is not False,
        start_time=_optional_str(data.get("startTime")),
        end_time=_optional_str(data.get("endTime")),
        total_hours=_optional_float(data.get("totalHours")),
        confidence=_optional_float(data.get("confidence")),
    )


def parse_identified_person(data: object) -> IdentifiedPerson | None:
    if not isinstance(data, dict):
        return None
    name_found = data.get("nameFound")
    if not isinstance(name_found, str) or not name_found:
        return None
    location = data.get("location")
    return IdentifiedPerson(
        name_found=name_found,
        location=location if isinstance(location, str) else "",
        confidence=_optional_float(data.get("confidence")) or 0.0,
        match_type=_optional_str(data.get("matchType")),
    )


def parse_extraction(body: dict[str, Any]) -> ExtractionResult:
    raw_shifts = body.get("shifts")
    shifts: list[ParsedShift] = []
    if isinstance(raw_shifts, list):
        for item in raw_shifts:
            shift = parse_parsed_shift(item)
            if shift is not None:
                shifts.append(shift)
    return ExtractionResult(
        shifts=tuple(shifts),
        identified_person=parse_identified_person(body.get("identifiedPerson")),
        processing_time_ms=_optional_int(body.get("processingTimeMs")) or 0,
    )


def parse_job_alias(row: object) -> JobAlias | None:
    if not isinstance(row, dict):
        return None
    alias = row.get("alias")
    job_config_id = row.get("job_config_id")
    if not isinstance(alias, str) or not isinstance(job_config_id, str):
        return None
    row_id = row.get("id")
    return JobAlias(alias=alias, job_config_id=job_config_id, id=str(row_id) if row_id else None)


def parse_roster_identifier(data: object) -> RosterIdentifier | None:
    if not isinstance(data, dict):
        return None
    identifier = RosterIdentifier(
        name=_optional_str(data.get("name")),
        color=_optional_str(data.get("color")),
        position=_optional_str(data.get("position")),
        custom_note=_optional_str(data.get("customNote")),
    )
    if not identifier.to_payload():
        return None
    return identifier


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _optional_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


def _optional_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None
