from unittest.mock import Mock

from roster_scanner.adapters.memory_store import InMemoryStore
from roster_scanner.domain.errors import ErrorType
from roster_scanner.domain.models import (
    AccessToken,
    DefaultHours,
    ExtractionResult,
    JobConfig,
    JobMapping,
    OcrResult,
    ParsedShift,
    QuestionAnswer,
    QuestionGenerationResult,
    ScanUsage,
    SmartQuestion,
)
from roster_scanner.domain.results import Err, Ok
from roster_scanner.services.job_mapping_service import JobMappingReconciler
from roster_scanner.services.pipeline_controller import (
    ALIAS_SAVE_WARNING,
    COMMIT_FAILED_MESSAGE,
    EMPTY_SELECTION_MESSAGE,
    PipelineController,
    ScanStep,
)
from roster_scanner.services.scan_client import ScanClient
from roster_scanner.services.token_manager import TokenManager
from roster_scanner.services.usage_gate import UsageGate

BARISTA = JobConfig(id="job-1", name="Barista", default_hours=DefaultHours(weekday=7.5))
OCR = OcrResult(success=True, content_type="table")
QUESTION = SmartQuestion(id="q1", question="Which row is yours?")


def _generation(questions=(), skip=False, used=None, limit=None) -> Ok:
    return Ok(
        QuestionGenerationResult(
            questions=tuple(questions),
            ocr_data=OCR,
            skip_to_extraction=skip,
            scans_used=used,
            scan_limit=limit,
        )
    )


def _extraction(*shifts: ParsedShift) -> Ok:
    return Ok(ExtractionResult(shifts=shifts))


def _shift(shift_id: str, name: str, mapped: str | None = None, **kwargs) -> ParsedShift:
    return ParsedShift(
        id=shift_id, date="2025-03-03", roster_job_name=name, mapped_job_id=mapped, **kwargs
    )


class Harness:
    def __init__(self, scan_client=None, store: InMemoryStore | None = None, auth=None) -> None:
        self.store = store or InMemoryStore(job_configs=[BARISTA])
        self.scan_client = scan_client or Mock()
        self.encoder = Mock()
        self.encoder.encode.return_value = "aW1hZ2U="
        self.scheduled: list = []
        self.closed: list[bool] = []
        self.controller = PipelineController(
            scan_client=self.scan_client,
            reconciler=JobMappingReconciler(self.store),
            usage_gate=UsageGate(self.store, app_limit=5),
            image_encoder=self.encoder,
            jobs=self.store,
            shift_store=self.store,
            profile=self.store,
            auth=auth,
            on_close=lambda: self.closed.append(True),
            scheduler=lambda delay, callback: self.scheduled.append((delay, callback)),
        )

    def start(self) -> PipelineController:
        self.controller.open()
        self.controller.select_file(b"\xff\xd8jpeg", "roster.jpg", "image/jpeg")
        return self.controller


def test_questions_step_then_answers_run_phase2() -> None:
    harness = Harness()
    harness.scan_client.phase1.return_value = _generation([QUESTION], used=2, limit=20)
    harness.scan_client.phase2.return_value = _extraction(_shift("s1", "Barista", "job-1"))
    controller = harness.start()

    controller.process()

    assert controller.state.step == ScanStep.QUESTIONS
    assert controller.state.questions == (QUESTION,)
    assert controller.state.scan_usage == ScanUsage(used=2, limit=5)
    harness.scan_client.phase2.assert_not_called()

    controller.submit_answers([QuestionAnswer("q1", "alex")])

    assert controller.state.step == ScanStep.CONFIRMATION
    args = harness.scan_client.phase2.call_args.args
    assert args[0] == OCR
    assert args[1] == [QuestionAnswer("q1", "alex")]
    assert args[2] == [BARISTA]


def test_skip_flag_goes_straight_to_extraction() -> None:
    harness = Harness()
    harness.scan_client.phase1.return_value = _generation([QUESTION], skip=True)
    harness.scan_client.phase2.return_value = _extraction(_shift("s1", "Barista", "job-1"))
    controller = harness.start()

    controller.process()

    assert controller.state.step == ScanStep.CONFIRMATION
    assert harness.scan_client.phase2.call_args.args[1] == []


def test_empty_questions_skip_even_without_flag() -> None:
    harness = Harness()
    harness.scan_client.phase1.return_value = _generation([], skip=False)
    harness.scan_client.phase2.return_value = _extraction(_shift("s1", "Barista", "job-1"))
    controller = harness.start()

    controller.process()

    assert controller.state.step == ScanStep.CONFIRMATION
    harness.scan_client.phase2.assert_called_once()


def test_unmapped_names_lead_to_mapping_step() -> None:
    harness = Harness()
    harness.scan_client.phase1.return_value = _generation()
    harness.scan_client.phase2.return_value = _extraction(
        _shift("s1", "Kitchen"),
        _shift("s2", "Barista", "job-1"),
        _shift("s3", "Bar", "deleted-job"),
        _shift("s4", "Kitchen"),
    )
    controller = harness.start()

    controller.process()

    assert controller.state.step == ScanStep.MAPPING
    assert controller.state.unmapped_job_names == ("Kitchen", "Bar")

    controller.complete_mapping(
        [
            JobMapping("Kitchen", "job-1", save_as_alias=True),
            JobMapping("Bar", "job-1"),
        ]
    )

    state = controller.state
    assert state.step == ScanStep.CONFIRMATION
    assert state.unmapped_job_names == ()
    assert all(shift.mapped_job_id == "job-1" for shift in state.parsed_shifts)
    assert [alias.alias for alias in harness.store.list_aliases()] == ["Kitchen"]
    assert [alias.alias for alias in state.job_aliases] == ["Kitchen"]
    assert state.warnings == ()


def test_alias_save_failure_is_a_warning() -> None:
    store = InMemoryStore(job_configs=[BARISTA])
    store.upsert_aliases = Mock(side_effect=RuntimeError("Storage API error 500"))
    harness = Harness(store=store)
    harness.scan_client.phase1.return_value = _generation()
    harness.scan_client.phase2.return_value = _extraction(_shift("s1", "Kitchen"))
    controller = harness.start()
    controller.process()

    controller.complete_mapping([JobMapping("Kitchen", "job-1", save_as_alias=True)])

    assert controller.state.step == ScanStep.CONFIRMATION
    assert controller.state.error is None
    assert controller.state.warnings == (ALIAS_SAVE_WARNING,)


def test_quota_refusal_makes_no_network_call() -> None:
    store = InMemoryStore(job_configs=[BARISTA], usage=ScanUsage(used=5, limit=20))
    harness = Harness(store=store)
    controller = harness.start()

    controller.process()

    state = controller.state
    assert state.error_type is ErrorType.LIMIT_EXCEEDED
    assert state.error == "Monthly limit reached (5 scans)."
    assert state.step == ScanStep.UPLOAD
    harness.encoder.encode.assert_not_called()
    harness.scan_client.phase1.assert_not_called()


def test_phase1_failure_keeps_server_limit_and_retries() -> None:
    harness = Harness()
    harness.scan_client.phase1.side_effect = [
        Err(ErrorType.LIMIT_EXCEEDED, "Monthly limit reached", status=429, scan_limit=20),
        _generation([QUESTION]),
    ]
    controller = harness.start()

    controller.process()

    assert controller.state.error == "Monthly limit reached"
    assert controller.state.scan_limit == 20
    assert controller.state.can_retry is True
    assert controller.state.is_loading is False

    controller.retry()

    assert controller.state.error is None
    assert controller.state.step == ScanStep.QUESTIONS
    assert harness.scan_client.phase1.call_count == 2


def test_phase2_retry_does_not_repeat_phase1() -> None:
    harness = Harness()
    harness.scan_client.phase1.return_value = _generation()
    harness.scan_client.phase2.side_effect = [
        Err(ErrorType.NETWORK, "Network error"),
        _extraction(_shift("s1", "Barista", "job-1")),
    ]
    controller = harness.start()

    controller.process()
    assert controller.state.error_type is ErrorType.NETWORK

    controller.retry()

    assert controller.state.step == ScanStep.CONFIRMATION
    assert harness.scan_client.phase1.call_count == 1
    assert harness.scan_client.phase2.call_count == 2


def test_confirm_derives_end_time_and_schedules_close() -> None:
    harness = Harness()
    harness.scan_client.phase1.return_value = _generation()
    harness.scan_client.phase2.return_value = _extraction(
        _shift("s1", "Barista", "job-1", start_time="09:00"),
        _shift("s2", "Barista", "job-1", selected=False),
    )
    controller = harness.start()
    controller.process()

    controller.confirm()

    state = controller.state
    assert state.step == ScanStep.SUCCESS
    assert state.show_success is True
    assert state.added_count == 1
    assert state.parsed_shifts == ()
    (record,) = harness.store.shifts
    assert record.hours == 7.5
    assert record.start_time == "09:00"
    assert record.end_time == "16:30"

    ((delay, callback),) = harness.scheduled
    assert delay == 2.0
    callback()
    assert harness.closed == [True]
    assert controller.is_disposed is True


def test_confirm_with_nothing_selected_shows_error() -> None:
    harness = Harness()
    harness.scan_client.phase1.return_value = _generation()
    harness.scan_client.phase2.return_value = _extraction(_shift("s1", "Barista", "job-1"))
    controller = harness.start()
    controller.process()
    controller.toggle_shift("s1")

    controller.confirm()

    assert controller.state.error == EMPTY_SELECTION_MESSAGE
    assert controller.state.step == ScanStep.CONFIRMATION
    assert harness.store.shifts == []


def test_commit_failure_can_be_retried() -> None:
    store = InMemoryStore(job_configs=[BARISTA])
    original_add = store.add_shifts
    store.add_shifts = Mock(side_effect=[RuntimeError("offline"), None])
    harness = Harness(store=store)
    harness.scan_client.phase1.return_value = _generation()
    harness.scan_client.phase2.return_value = _extraction(_shift("s1", "Barista", "job-1"))
    controller = harness.start()
    controller.process()

    controller.confirm()

    assert controller.state.error == COMMIT_FAILED_MESSAGE
    assert controller.state.step == ScanStep.CONFIRMATION

    store.add_shifts.side_effect = original_add
    controller.retry()

    assert controller.state.step == ScanStep.SUCCESS
    assert len(store.shifts) == 1


def test_dispose_during_request_drops_result() -> None:
    harness = Harness()
    controller = harness.start()

    def _phase1(image_base64):
        controller.dispose()
        return _generation([QUESTION])

    harness.scan_client.phase1.side_effect = _phase1

    controller.process()

    assert controller.state.step == ScanStep.PROCESSING
    assert controller.state.questions == ()

    controller.process()
    assert harness.scan_client.phase1.call_count == 1


def test_close_timer_after_dispose_does_not_close_again() -> None:
    harness = Harness()
    harness.scan_client.phase1.return_value = _generation()
    harness.scan_client.phase2.return_value = _extraction(_shift("s1", "Barista", "job-1"))
    controller = harness.start()
    controller.process()
    controller.confirm()

    controller.dispose()
    harness.scheduled[0][1]()

    assert harness.closed == []


def test_open_resets_pipeline_state() -> None:
    harness = Harness()
    harness.scan_client.phase1.return_value = _generation([QUESTION])
    controller = harness.start()
    controller.process()

    controller.open()

    state = controller.state
    assert state.step == ScanStep.UPLOAD
    assert state.file is None
    assert state.questions == ()
    assert state.job_configs == (BARISTA,)


class SessionAuth:
    def __init__(self) -> None:
        self.session = AccessToken(token="stale", expires_at=None, user_id="user-1")
        self.refresh_calls = 0

    def get_session(self):
        return self.session

    def validate_token(self, token: str) -> bool:
        return True

    def refresh_session(self):
        self.refresh_calls += 1
        self.session = AccessToken(token="fresh", expires_at=None, user_id="user-1")
        return self.session

    def sign_out(self) -> None:
        self.session = None

    def on_auth_state_change(self, listener):
        raise NotImplementedError


class DummyResponse:
    def __init__(self, status_code: int, body: dict) -> None:
        self.status_code = status_code
        self._body = body

    def json(self):
        return self._body


def test_expired_token_is_refreshed_and_scan_completes(monkeypatch) -> None:
    auth = SessionAuth()
    tokens = TokenManager(auth, release_grace_seconds=0)
    client = ScanClient(tokens, "https://example.test/functions/v1/process-roster", "anon",
                        sleep=lambda _: None)
    calls: list[tuple[str, str | None]] = []
    bodies: list[dict] = []
    phase1_ocr = {"success": True, "contentType": "table", "rows": [["Alex", None, 7]]}

    def _fake_post(url, headers=None, json=None, timeout=None):
        token = headers["Authorization"].removeprefix("Bearer ")
        calls.append((token, json.get("phase")))
        bodies.append(json)
        if token == "stale":
            return DummyResponse(401, {"error": "JWT expired"})
        if json.get("phase") == "questions":
            return DummyResponse(
                200,
                {"success": True, "questions": [], "ocrData": phase1_ocr,
                 "scansUsed": 1, "scanLimit": 5},
            )
        return DummyResponse(
            200,
            {"success": True, "shifts": [
                {"id": "s1", "date": "2025-03-03", "rosterJobName": "Barista",
                 "mappedJobId": "job-1", "startTime": "09:00"}
            ]},
        )

    monkeypatch.setattr("roster_scanner.services.scan_client.requests.post", _fake_post)
    harness = Harness(scan_client=client)
    controller = harness.start()

    controller.process()

    assert calls == [("stale", "questions"), ("fresh", "questions"), ("fresh", "filter")]
    assert bodies[2]["answers"] == []
    assert bodies[2]["ocrData"] == phase1_ocr
    assert auth.refresh_calls == 1
    assert controller.state.step == ScanStep.CONFIRMATION
    assert controller.state.scan_usage == ScanUsage(used=1, limit=5)

    controller.confirm()

    assert harness.store.shifts[0].end_time == "16:30"


def test_back_to_upload_clears_questions() -> None:
    harness = Harness()
    harness.scan_client.phase1.return_value = _generation([QUESTION])
    controller = harness.start()
    controller.process()

    controller.back_to_upload()

    assert controller.state.step == ScanStep.UPLOAD
    assert controller.state.questions == ()
    assert controller.state.ocr_data is None
    assert controller.state.file is not None


def test_set_parsed_shifts_reconciles_against_known_jobs() -> None:
    harness = Harness()
    controller = harness.start()

    controller.set_parsed_shifts([_shift("s1", "Bar", "missing"), _shift("s2", "FOH", "job-1")])

    assert [shift.mapped_job_id for shift in controller.state.parsed_shifts] == [None, "job-1"]
    assert controller.state.unmapped_job_names == ("Bar",)


def test_add_job_config_refreshes_job_list() -> None:
    harness = Harness()
    controller = harness.start()
    kitchen = JobConfig(id="job-2", name="Kitchen")

    controller.add_job_config(kitchen)

    assert controller.state.job_configs == (BARISTA, kitchen)


def test_reauthenticate_signs_out_and_closes() -> None:
    auth = Mock()
    harness = Harness(auth=auth)
    controller = harness.start()

    controller.reauthenticate()

    auth.sign_out.assert_called_once()
    assert harness.closed == [True]
    assert controller.is_disposed is True
