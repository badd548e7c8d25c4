from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

import requests

from roster_scanner.domain.errors import (
    ErrorType,
    error_type_for_status,
    parse_error_type,
    sanitize_auth_message,
)
from roster_scanner.domain.models import (
    ExtractionResult,
    JobAlias,
    JobConfig,
    OcrResult,
    QuestionAnswer,
    QuestionGenerationResult,
    RosterIdentifier,
)
from roster_scanner.domain.payloads import parse_extraction, parse_question_generation
from roster_scanner.domain.results import Err, Ok
from roster_scanner.services.token_manager import TokenManager

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_AUTH_STATUSES = (401, 403)


class ScanClient:
    """Calls the remote roster function with the auth-retry protocol.

    Classified HTTP failures come back as ``Err``; nothing here raises for a
    non-2xx response.
    """

    def __init__(
        self,
        tokens: TokenManager,
        function_url: str,
        anon_key: str,
        retry_delay_seconds: float = 0.5,
        max_auth_retries: int = 2,
        timeout_seconds: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._tokens = tokens
        self._function_url = function_url
        self._anon_key = anon_key
        self._retry_delay_seconds = retry_delay_seconds
        self._max_auth_retries = max_auth_retries
        self._timeout_seconds = timeout_seconds
        self._sleep = sleep

    def phase1(self, image_base64: str) -> Ok[QuestionGenerationResult] | Err:
        body = {"phase": "questions", "imageBase64": image_base64}
        return self._call("phase 1", body, parse_question_generation)

    def phase2(
        self,
        ocr: OcrResult,
        answers: list[QuestionAnswer],
        job_configs: list[JobConfig],
        job_aliases: list[JobAlias],
    ) -> Ok[ExtractionResult] | Err:
        body = {
            "phase": "filter",
            "ocrData": ocr.to_payload(),
            "answers": [answer.to_payload() for answer in answers],
            "jobConfigs": [job.to_payload() for job in job_configs],
            "jobAliases": [alias.to_payload() for alias in job_aliases],
        }
        return self._call("phase 2", body, parse_extraction)

    def process_single_phase(
        self,
        image_base64: str,
        job_configs: list[JobConfig],
        job_aliases: list[JobAlias],
        identifier: RosterIdentifier | None = None,
    ) -> Ok[ExtractionResult] | Err:
        body: dict[str, Any] = {
            "imageBase64": image_base64,
            "jobConfigs": [job.to_payload() for job in job_configs],
            "jobAliases": [alias.to_payload() for alias in job_aliases],
        }
        if identifier is not None and identifier.to_payload():
            body["identifier"] = identifier.to_payload()
        return self._call("single-phase scan", body, parse_extraction)

    def _call(
        self,
        context: str,
        body: dict[str, Any],
        parse: Callable[[dict[str, Any]], T],
    ) -> Ok[T] | Err:
        try:
            access = self._tokens.get_valid_token(force_refresh=False)
            if access is None:
                return Err(ErrorType.AUTH, "Authentication required")
            if not self._function_url or not self._anon_key:
                return Err(ErrorType.CONFIG, "Roster scanning service is not configured")

            token = access.token
            retries = 0
            while True:
                status, payload = self._post(token, body)
                if status not in _AUTH_STATUSES or retries >= self._max_auth_retries:
                    break
                retries += 1
                LOGGER.info(
                    "Roster %s got %s; refreshing token (retry %s/%s)",
                    context,
                    status,
                    retries,
                    self._max_auth_retries,
                )
                self._sleep(self._retry_delay_seconds)
                refreshed = self._tokens.get_valid_token(force_refresh=True)
                if refreshed is None:
                    break
                token = refreshed.token

            if not 200 <= status < 300:
                error = self._classify_failure(status, payload)
                LOGGER.warning(
                    "Roster %s failed: status=%s type=%s", context, status, error.error_type.value
                )
                return error
            return self._parse_success(status, payload, parse)
        except requests.RequestException as exc:
            LOGGER.error("Roster %s request error: %s", context, exc)
            return Err(ErrorType.NETWORK, str(exc) or "Network error")

    def _post(self, token: str, body: dict[str, Any]) -> tuple[int, dict[str, Any] | None]:
        response = requests.post(
            self._function_url,
            headers={
                "Authorization": f"Bearer {token}",
                "apikey": self._anon_key,
                "Content-Type": "application/json",
            },
            json=body,
            timeout=self._timeout_seconds,
        )
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            payload = None
        return response.status_code, payload

    @staticmethod
    def _classify_failure(status: int, payload: dict[str, Any] | None) -> Err:
        message = _response_error_message(payload, status)
        body_error_type = payload.get("errorType") if payload else None
        if isinstance(body_error_type, str):
            error_type = parse_error_type(body_error_type)
        else:
            error_type = error_type_for_status(status)
        if error_type is ErrorType.AUTH:
            message = sanitize_auth_message(message)
        return Err(
            error_type=error_type,
            message=message,
            status=status,
            scans_used=_count(payload, "scansUsed"),
            scan_limit=_count(payload, "scanLimit"),
        )

    @staticmethod
    def _parse_success(
        status: int,
        payload: dict[str, Any] | None,
        parse: Callable[[dict[str, Any]], T],
    ) -> Ok[T] | Err:
        if payload is None:
            return Err(ErrorType.UNKNOWN, f"Request failed ({status})", status=status)
        if payload.get("success") is not True:
            error_type = parse_error_type(payload.get("errorType"))
            message = _response_error_message(payload, status)
            if error_type is ErrorType.AUTH:
                message = sanitize_auth_message(message)
            return Err(
                error_type=error_type,
                message=message,
                status=status,
                scans_used=_count(payload, "scansUsed"),
                scan_limit=_count(payload, "scanLimit"),
            )
        try:
            return Ok(parse(payload))
        except (TypeError, ValueError, AttributeError) as exc:
            LOGGER.error("Failed to parse roster response: %s", exc)
            return Err(ErrorType.UNKNOWN, f"Request failed ({status})", status=status)


def _response_error_message(payload: dict[str, Any] | None, status: int) -> str:
    if payload:
        for key in ("error", "message", "error_description"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return f"Request failed ({status})"


def _count(payload: dict[str, Any] | None, key: str) -> int | None:
    if not payload:
        return None
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)
