from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class ErrorType(str, Enum):
    """Failure kinds surfaced by the scan pipeline."""

    AUTH = "auth"
    CONFIG = "config"
    LIMIT_EXCEEDED = "limit_exceeded"
    INVALID_INPUT = "invalid_input"
    NETWORK = "network"
    UNKNOWN = "unknown"
    # Reported by the extraction function in the response body only.
    BLURRY = "blurry"
    NO_SHIFTS = "no_shifts"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    NOT_ROSTER = "not_roster"


@dataclass(frozen=True)
class ErrorMessage:
    title: str
    description: str


ERROR_MESSAGES: dict[ErrorType, ErrorMessage] = {
    ErrorType.AUTH: ErrorMessage(
        "Authentication required", "Please sign in again and retry the scan."
    ),
    ErrorType.BLURRY: ErrorMessage(
        "Image too blurry",
        "Please take a clearer photo of your roster with better lighting.",
    ),
    ErrorType.CONFIG: ErrorMessage(
        "Service not configured",
        "AI scanning is not configured. Please try again later.",
    ),
    ErrorType.INVALID_INPUT: ErrorMessage(
        "Invalid image data",
        "We could not read this file. Please choose a different image.",
    ),
    ErrorType.NO_SHIFTS: ErrorMessage(
        "No shifts found",
        "No work shifts could be detected. Make sure this is a work roster/schedule.",
    ),
    ErrorType.NETWORK: ErrorMessage(
        "Network error", "Unable to reach the AI service. Please try again."
    ),
    ErrorType.TIMEOUT: ErrorMessage(
        "Request timed out",
        "Processing took too long. Please try again with a smaller or clearer image.",
    ),
    ErrorType.LIMIT_EXCEEDED: ErrorMessage(
        "Monthly limit reached",
        "You've reached your monthly scan limit. Limit resets next month.",
    ),
    ErrorType.PARSE_ERROR: ErrorMessage(
        "Processing error",
        "Failed to process the roster. Please try with a different image.",
    ),
    ErrorType.NOT_ROSTER: ErrorMessage(
        "Not a roster",
        "This doesn't appear to be a work roster. Please upload a schedule image.",
    ),
    ErrorType.UNKNOWN: ErrorMessage(
        "Something went wrong", "An unexpected error occurred. Please try again."
    ),
}

SESSION_EXPIRED_MESSAGE = "Session expired. Please sign in again."
_AUTH_DETAIL_PATTERN = re.compile(r"jwt|token|expired|invalid", re.IGNORECASE)


def parse_error_type(value: object) -> ErrorType:
    """Parse a wire errorType string, falling back to UNKNOWN."""

    if isinstance(value, ErrorType):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        for error_type in ErrorType:
            if error_type.value == normalized:
                return error_type
    return ErrorType.UNKNOWN


def error_type_for_status(status: int) -> ErrorType:
    if status in (401, 403):
        return ErrorType.AUTH
    if status == 429:
        return ErrorType.LIMIT_EXCEEDED
    if status == 400:
        return ErrorType.INVALID_INPUT
    if status >= 500:
        return ErrorType.NETWORK
    return ErrorType.UNKNOWN


def sanitize_auth_message(message: str) -> str:
    """Hide token/JWT details behind a generic session-expired message."""

    if _AUTH_DETAIL_PATTERN.search(message or ""):
        return SESSION_EXPIRED_MESSAGE
    return message


def describe_error(error_type: ErrorType | str | None) -> ErrorMessage:
    return ERROR_MESSAGES.get(parse_error_type(error_type), ERROR_MESSAGES[ErrorType.UNKNOWN])
