from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from roster_scanner.domain.errors import ErrorType
from roster_scanner.domain.models import (
    ExtractionResult,
    IdentifiedPerson,
    JobAlias,
    JobConfig,
    JobMapping,
    OcrResult,
    ParsedShift,
    QuestionAnswer,
    RosterFile,
    RosterIdentifier,
    ScanUsage,
    SmartQuestion,
)
from roster_scanner.domain.results import Err
from roster_scanner.domain.shift_records import build_shift_records
from roster_scanner.ports.auth_port import AuthPort
from roster_scanner.ports.image_encoder_port import ImageEncoderPort
from roster_scanner.ports.job_config_port import JobConfigPort
from roster_scanner.ports.profile_port import ProfilePort
from roster_scanner.ports.shift_store_port import ShiftStorePort
from roster_scanner.services.job_mapping_service import JobMappingReconciler
from roster_scanner.services.scan_client import ScanClient
from roster_scanner.services.usage_gate import UsageGate

LOGGER = logging.getLogger(__name__)

ALIAS_SAVE_WARNING = (
    "Alias preferences could not be saved. They will need to be re-mapped next time."
)
EMPTY_SELECTION_MESSAGE = "Please select at least one shift to add."
COMMIT_FAILED_MESSAGE = "Failed to add shifts. Please try again."

Scheduler = Callable[[float, Callable[[], None]], None]


class ScanStep(str, Enum):
    UPLOAD = "upload"
    PROCESSING = "processing"
    QUESTIONS = "questions"
    MAPPING = "mapping"
    CONFIRMATION = "confirmation"
    SUCCESS = "success"


@dataclass(frozen=True)
class PipelineState:
    step: ScanStep = ScanStep.UPLOAD
    file: RosterFile | None = None
    parsed_shifts: tuple[ParsedShift, ...] = ()
    unmapped_job_names: tuple[str, ...] = ()
    error: str | None = None
    error_type: ErrorType | None = None
    scan_limit: int | None = None
    is_loading: bool = False
    show_success: bool = False
    added_count: int = 0
    questions: tuple[SmartQuestion, ...] = ()
    ocr_data: OcrResult | None = None
    scan_usage: ScanUsage | None = None
    identified_person: IdentifiedPerson | None = None
    job_aliases: tuple[JobAlias, ...] = ()
    job_configs: tuple[JobConfig, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def can_retry(self) -> bool:
        return self.error is not None


def _timer_scheduler(delay: float, callback: Callable[[], None]) -> None:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()


class PipelineController:
    """State machine for one roster scan.

    upload -> processing -> questions -> (processing) -> mapping ->
    confirmation -> success. Errors overlay the current step and ``retry``
    replays whichever operation failed last. After ``dispose`` every
    in-flight continuation is dropped instead of touching state.
    """

    def __init__(
        self,
        scan_client: ScanClient,
        reconciler: JobMappingReconciler,
        usage_gate: UsageGate,
        image_encoder: ImageEncoderPort,
        jobs: JobConfigPort,
        shift_store: ShiftStorePort,
        profile: ProfilePort | None = None,
        auth: AuthPort | None = None,
        on_close: Callable[[], None] | None = None,
        success_close_delay_seconds: float = 2.0,
        scheduler: Scheduler = _timer_scheduler,
    ) -> None:
        self._scan_client = scan_client
        self._reconciler = reconciler
        self._usage_gate = usage_gate
        self._image_encoder = image_encoder
        self._jobs = jobs
        self._shift_store = shift_store
        self._profile = profile
        self._auth = auth
        self._on_close = on_close
        self._success_close_delay_seconds = success_close_delay_seconds
        self._scheduler = scheduler
        self._state_lock = threading.Lock()
        self._busy = threading.Lock()
        self._state = PipelineState()
        self._generation = 0
        self._disposed = False
        self._last_failed: Callable[[], None] | None = None

    @property
    def state(self) -> PipelineState:
        with self._state_lock:
            return self._state

    @property
    def is_disposed(self) -> bool:
        with self._state_lock:
            return self._disposed

    def open(self) -> None:
        """Reset every pipeline-scoped field and load aliases, usage and jobs."""

        with self._state_lock:
            self._generation += 1
            self._disposed = False
            self._state = PipelineState()
            generation = self._generation
        self._last_failed = None
        aliases = self._reconciler.load_aliases()
        usage = self._usage_gate.load_usage()
        self._update(
            generation,
            job_aliases=tuple(aliases),
            scan_usage=usage,
            job_configs=tuple(self._load_job_configs_quietly()),
        )

    def dispose(self) -> None:
        with self._state_lock:
            self._disposed = True
            self._generation += 1
        self._last_failed = None
        LOGGER.debug("Pipeline disposed")

    def select_file(self, content: bytes, filename: str, mime_type: str) -> None:
        self._update(
            self._generation,
            file=RosterFile(content=content, filename=filename, mime_type=mime_type),
            error=None,
            error_type=None,
        )

    def clear_file(self) -> None:
        self._update(self._generation, file=None, error=None, error_type=None)

    def process(self) -> None:
        self._guarded("process", self._process)

    def process_single_phase(self) -> None:
        self._guarded("single-phase scan", self._process_single_phase)

    def submit_answers(
        self, answers: list[QuestionAnswer], ocr_data: OcrResult | None = None
    ) -> None:
        data = ocr_data or self.state.ocr_data
        if data is None:
            self._update(
                self._generation, error="Missing OCR data", error_type=ErrorType.UNKNOWN
            )
            return
        answers = list(answers)
        self._guarded(
            "submit answers", lambda generation: self._run_phase2(generation, answers, data)
        )

    def complete_mapping(self, mappings: list[JobMapping]) -> None:
        mappings = list(mappings)
        self._guarded(
            "complete mapping",
            lambda generation: self._complete_mapping(generation, mappings),
        )

    def confirm(self) -> None:
        self._guarded("confirm", self._confirm)

    def retry(self) -> None:
        action = self._last_failed
        if action is None:
            LOGGER.debug("Retry requested with nothing to replay")
            return
        action()

    def back_to_upload(self) -> None:
        self._update(
            self._generation,
            step=ScanStep.UPLOAD,
            error=None,
            error_type=None,
            questions=(),
            ocr_data=None,
        )

    def back_to_questions(self) -> None:
        self._update(self._generation, step=ScanStep.QUESTIONS, error=None, error_type=None)

    def toggle_shift(self, shift_id: str) -> None:
        shifts = tuple(
            replace(shift, selected=not shift.selected) if shift.id == shift_id else shift
            for shift in self.state.parsed_shifts
        )
        self._update(self._generation, parsed_shifts=shifts)

    def set_parsed_shifts(self, shifts: list[ParsedShift]) -> None:
        known_ids = {job.id for job in self.state.job_configs}
        reconciled = self._reconciler.reconcile(shifts, known_ids)
        self._update(
            self._generation,
            parsed_shifts=tuple(reconciled),
            unmapped_job_names=tuple(self._reconciler.collect_unmapped(reconciled)),
        )

    def add_job_config(self, job: JobConfig) -> None:
        self._jobs.add_job_config(job)
        self._update(self._generation, job_configs=tuple(self._load_job_configs_quietly()))

    def reauthenticate(self) -> None:
        try:
            if self._auth is not None:
                self._auth.sign_out()
        finally:
            self._close()

    def _guarded(self, name: str, operation: Callable[[int], None]) -> None:
        if self.is_disposed:
            LOGGER.debug("Ignoring %s on a disposed pipeline", name)
            return
        if not self._busy.acquire(blocking=False):
            LOGGER.warning("Pipeline busy; ignoring %s", name)
            return
        try:
            operation(self._generation)
        finally:
            self._busy.release()

    def _process(self, generation: int) -> None:
        state = self.state
        if state.file is None:
            LOGGER.debug("Process requested without a file")
            return
        if not self._usage_gate.check_quota(state.scan_usage):
            self._fail(
                generation,
                ErrorType.LIMIT_EXCEEDED,
                self._usage_gate.limit_message(state.scan_usage),
                retry=self.process,
            )
            return

        self._update(
            generation,
            step=ScanStep.PROCESSING,
            error=None,
            error_type=None,
            is_loading=True,
        )
        image_base64 = self._encode(generation, state.file, retry=self.process)
        if image_base64 is None:
            return

        result = self._scan_client.phase1(image_base64)
        if isinstance(result, Err):
            self._fail(
                generation,
                result.error_type,
                result.message or "Failed to analyze roster",
                retry=self.process,
                scan_limit=result.scan_limit,
            )
            return

        payload = result.value
        changes: dict = {"ocr_data": payload.ocr_data, "questions": payload.questions}
        if payload.scans_used is not None and payload.scan_limit is not None:
            changes["scan_usage"] = self._usage_gate.apply_scan_counts(
                payload.scans_used, payload.scan_limit
            )
        if not self._update(generation, **changes):
            return

        if payload.skip_to_extraction or not payload.questions:
            LOGGER.info("Skipping questions; extracting shifts directly")
            self._run_phase2(generation, [], payload.ocr_data)
            return
        self._update(generation, step=ScanStep.QUESTIONS, is_loading=False)

    def _process_single_phase(self, generation: int) -> None:
        state = self.state
        if state.file is None:
            LOGGER.debug("Single-phase scan requested without a file")
            return
        if not self._usage_gate.check_quota(state.scan_usage):
            self._fail(
                generation,
                ErrorType.LIMIT_EXCEEDED,
                self._usage_gate.limit_message(state.scan_usage),
                retry=self.process_single_phase,
            )
            return
        self._update(
            generation,
            step=ScanStep.PROCESSING,
            error=None,
            error_type=None,
            is_loading=True,
        )
        image_base64 = self._encode(generation, state.file, retry=self.process_single_phase)
        if image_base64 is None:
            return
        job_configs = self._load_job_configs(generation, retry=self.process_single_phase)
        if job_configs is None:
            return
        result = self._scan_client.process_single_phase(
            image_base64,
            job_configs,
            list(state.job_aliases),
            self._load_roster_identifier(),
        )
        if isinstance(result, Err):
            self._fail(
                generation,
                result.error_type,
                result.message or "Failed to extract shifts",
                retry=self.process_single_phase,
                scan_limit=result.scan_limit,
            )
            return
        self._accept_extraction(generation, result.value, job_configs)

    def _run_phase2(
        self, generation: int, answers: list[QuestionAnswer], ocr_data: OcrResult
    ) -> None:
        def retry() -> None:
            self._guarded(
                "retry phase 2", lambda gen: self._run_phase2(gen, answers, ocr_data)
            )

        self._update(
            generation,
            step=ScanStep.PROCESSING,
            error=None,
            error_type=None,
            is_loading=True,
        )
        job_configs = self._load_job_configs(generation, retry=retry)
        if job_configs is None:
            return
        result = self._scan_client.phase2(
            ocr_data, answers, job_configs, list(self.state.job_aliases)
        )
        if isinstance(result, Err):
            self._fail(
                generation,
                result.error_type,
                result.message or "Failed to extract shifts",
                retry=retry,
            )
            return
        self._accept_extraction(generation, result.value, job_configs)

    def _accept_extraction(
        self, generation: int, extraction: ExtractionResult, job_configs: list[JobConfig]
    ) -> None:
        known_ids = {job.id for job in job_configs}
        shifts = self._reconciler.reconcile(extraction.shifts, known_ids)
        unmapped = self._reconciler.collect_unmapped(shifts)
        LOGGER.info(
            "Extracted %s shift(s); %s unmapped job name(s)", len(shifts), len(unmapped)
        )
        self._last_failed = None
        self._update(
            generation,
            parsed_shifts=tuple(shifts),
            unmapped_job_names=tuple(unmapped),
            identified_person=extraction.identified_person,
            job_configs=tuple(job_configs),
            step=ScanStep.MAPPING if unmapped else ScanStep.CONFIRMATION,
            is_loading=False,
        )

    def _complete_mapping(self, generation: int, mappings: list[JobMapping]) -> None:
        shifts = self._reconciler.apply_mappings(self.state.parsed_shifts, mappings)
        if not self._update(generation, parsed_shifts=tuple(shifts)):
            return
        changes: dict = {}
        if any(mapping.save_as_alias for mapping in mappings):
            if self._reconciler.persist_aliases(mappings):
                changes["job_aliases"] = tuple(self._reconciler.load_aliases())
            else:
                changes["warnings"] = self.state.warnings + (ALIAS_SAVE_WARNING,)
        self._update(
            generation,
            unmapped_job_names=tuple(self._reconciler.collect_unmapped(shifts)),
            step=ScanStep.CONFIRMATION,
            error=None,
            error_type=None,
            **changes,
        )

    def _confirm(self, generation: int) -> None:
        selected = [
            shift for shift in self.state.parsed_shifts if shift.selected and shift.mapped_job_id
        ]
        if not selected:
            self._update(
                generation, error=EMPTY_SELECTION_MESSAGE, error_type=ErrorType.UNKNOWN
            )
            return
        self._update(generation, is_loading=True)
        try:
            records = build_shift_records(selected, self._jobs.list_job_configs())
            self._shift_store.add_shifts(records)
        except Exception as exc:
            LOGGER.error("Failed to add scanned shifts: %s", exc)
            self._fail(generation, ErrorType.UNKNOWN, COMMIT_FAILED_MESSAGE, retry=self.confirm)
            return

        LOGGER.info("Added %s scanned shift(s)", len(records))
        self._last_failed = None
        committed = self._update(
            generation,
            step=ScanStep.SUCCESS,
            show_success=True,
            added_count=len(records),
            is_loading=False,
            error=None,
            error_type=None,
            parsed_shifts=(),
            unmapped_job_names=(),
            questions=(),
            ocr_data=None,
            identified_person=None,
            file=None,
        )
        if committed:
            self._scheduler(
                self._success_close_delay_seconds,
                lambda: self._close_after_success(generation),
            )

    def _close_after_success(self, generation: int) -> None:
        with self._state_lock:
            stale = self._disposed or generation != self._generation
        if stale:
            return
        self._close()

    def _close(self) -> None:
        self.dispose()
        if self._on_close is not None:
            self._on_close()

    def _encode(
        self, generation: int, roster_file: RosterFile, retry: Callable[[], None]
    ) -> str | None:
        try:
            return self._image_encoder.encode(roster_file.content, roster_file.mime_type)
        except Exception as exc:
            LOGGER.error("Failed to prepare roster image %s: %s", roster_file.filename, exc)
            self._fail(generation, ErrorType.UNKNOWN, str(exc) or "An error occurred", retry=retry)
            return None

    def _load_job_configs(
        self, generation: int, retry: Callable[[], None]
    ) -> list[JobConfig] | None:
        try:
            return list(self._jobs.list_job_configs())
        except Exception as exc:
            LOGGER.error("Failed to load job configurations: %s", exc)
            self._fail(generation, ErrorType.UNKNOWN, str(exc) or "An error occurred", retry=retry)
            return None

    def _load_job_configs_quietly(self) -> list[JobConfig]:
        try:
            return list(self._jobs.list_job_configs())
        except Exception as exc:
            LOGGER.warning("Failed to load job configurations: %s", exc)
            return []

    def _load_roster_identifier(self) -> RosterIdentifier | None:
        if self._profile is None:
            return None
        try:
            return self._profile.get_roster_identifier()
        except Exception as exc:
            LOGGER.warning("Failed to load roster identifier: %s", exc)
            return None

    def _fail(
        self,
        generation: int,
        error_type: ErrorType,
        message: str,
        retry: Callable[[], None],
        scan_limit: int | None = None,
    ) -> None:
        if not self._update(
            generation,
            error=message,
            error_type=error_type,
            scan_limit=scan_limit,
            is_loading=False,
        ):
            return
        self._last_failed = retry

    def _update(self, generation: int, **changes) -> bool:
        with self._state_lock:
            if self._disposed or generation != self._generation:
                LOGGER.debug("Dropping stale pipeline update: %s", sorted(changes))
                return False
            self._state = replace(self._state, **changes)
            return True
