# Domain Layer
from src.domain.entities import (
    ClipRequest,
    ClipResult,
    DeliveryOutcome,
    JobState,
    MediaFormat,
    SeekPlan,
    TranscodeState,
)
from src.domain.exceptions import (
    CleanupError,
    ClipDownloaderError,
    DeliveryAbortedError,
    FormatResolveError,
    NotFoundError,
    StreamOpenError,
    TranscodeError,
    UnsupportedFormatError,
    ValidationError,
)

__all__ = [
    "ClipRequest",
    "ClipResult",
    "DeliveryOutcome",
    "JobState",
    "MediaFormat",
    "SeekPlan",
    "TranscodeState",
    "ClipDownloaderError",
    "ValidationError",
    "NotFoundError",
    "UnsupportedFormatError",
    "FormatResolveError",
    "StreamOpenError",
    "TranscodeError",
    "DeliveryAbortedError",
    "CleanupError",
]
