from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class AccessToken:
    token: str
    expires_at: float | None = None
    refresh_token: str | None = None
    user_id: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class ScanUsage:
    used: int
    limit: int


@dataclass(frozen=True)
class OcrResult:
    """Phase 1 OCR output.

    ``wire`` keeps the object exactly as the server sent it; phase 2 must
    receive it unchanged, so ``to_payload`` returns a copy of it whenever
    it is present. The typed fields are read-only views for local use.
    """

    success: bool
    content_type: str | None = None
    table_type: str | None = None
    headers: tuple[Any, ...] = ()
    rows: tuple[tuple[Any, ...], ...] = ()
    extracted_shifts: tuple[dict, ...] | None = None
    raw_text: str | None = None
    metadata: dict[str, Any] | None = None
    wire: dict[str, Any] | None = field(default=None, compare=False, repr=False)

    def to_payload(self) -> dict[str, Any]:
        if self.wire is not None:
            return copy.deepcopy(self.wire)
        payload: dict[str, Any] = {
            "success": self.success,
            "contentType": self.content_type,
            "tableType": self.table_type,
            "headers": list(self.headers),
            "rows": [list(row) for row in self.rows],
            "extractedShifts": (
                [dict(item) for item in self.extracted_shifts]
                if self.extracted_shifts is not None
                else None
            ),
            "rawText": self.raw_text,
            "metadata": self.metadata,
        }
        return {key: value for key, value in payload.items() if value is not None}


EMPTY_OCR_RESULT = OcrResult(success=False, content_type="text")


@dataclass(frozen=True)
class QuestionOption:
    label: str
    value: str
    description: str | None = None


@dataclass(frozen=True)
class SmartQuestion:
    id: str
    question: str
    type: str = "single_select"
    options: tuple[QuestionOption, ...] = ()
    required: bool = True


@dataclass(frozen=True)
class QuestionAnswer:
    question_id: str
    value: str

    def to_payload(self) -> dict[str, str]:
        return {"questionId": self.question_id, "value": self.value}


@dataclass(frozen=True)
class ParsedShift:
    id: str
    date: str
    roster_job_name: str
    mapped_job_id: str | None = None
    selected: bool = True
    start_time: str | None = None
    end_time: str | None = None
    total_hours: float | None = None
    confidence: float | None = None


@dataclass(frozen=True)
class IdentifiedPerson:
    name_found: str
    location: str
    confidence: float
    match_type: str | None = None


@dataclass(frozen=True)
class RosterIdentifier:
    name: str | None = None
    color: str | None = None
    position: str | None = None
    custom_note: str | None = None

    def to_payload(self) -> dict[str, str]:
        payload = {
            "name": self.name,
            "color": self.color,
            "position": self.position,
            "customNote": self.custom_note,
        }
        return {key: value for key, value in payload.items() if value}


@dataclass(frozen=True)
class JobAlias:
    alias: str
    job_config_id: str
    id: str | None = None

    def to_payload(self) -> dict[str, str]:
        return {"alias": self.alias, "job_config_id": self.job_config_id}


@dataclass(frozen=True)
class JobMapping:
    roster_job_name: str
    mapped_job_id: str
    save_as_alias: bool = False


@dataclass(frozen=True)
class DefaultHours:
    weekday: float = 0.0
    weekend: float = 0.0


@dataclass(frozen=True)
class JobConfig:
    id: str
    name: str
    color: str = "blue"
    default_hours: DefaultHours = field(default_factory=DefaultHours)

    def to_payload(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class ShiftRecord:
    id: str
    date: str
    job_id: str
    hours: float
    note: str
    start_time: str | None = None
    end_time: str | None = None


@dataclass(frozen=True)
class QuestionGenerationResult:
    questions: tuple[SmartQuestion, ...]
    ocr_data: OcrResult
    skip_to_extraction: bool = False
    scans_used: int | None = None
    scan_limit: int | None = None


@dataclass(frozen=True)
class ExtractionResult:
    shifts: tuple[ParsedShift, ...]
    identified_person: IdentifiedPerson | None = None
    processing_time_ms: int = 0


@dataclass(frozen=True)
class ScanHistoryEntry:
    id: str
    created_at: str
    shifts_created: int
    processing_time_ms: int | None


@dataclass(frozen=True)
class RosterFile:
    content: bytes
    filename: str
    mime_type: str

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == "application/pdf" or self.content.lstrip().startswith(b"%PDF")
