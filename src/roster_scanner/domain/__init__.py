from .errors import ErrorType
from .models import (
    AccessToken,
    JobAlias,
    JobConfig,
    JobMapping,
    OcrResult,
    ParsedShift,
    QuestionAnswer,
    ScanUsage,
    ShiftRecord,
    SmartQuestion,
)
from .results import Err, Ok

__all__ = [
    "AccessToken",
    "Err",
    "ErrorType",
    "JobAlias",
    "JobConfig",
    "JobMapping",
    "OcrResult",
    "Ok",
    "ParsedShift",
    "QuestionAnswer",
    "ScanUsage",
    "ShiftRecord",
    "SmartQuestion",
]
