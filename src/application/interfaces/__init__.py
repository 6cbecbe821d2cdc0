# Application Interfaces (Protocols)
from src.application.interfaces.clip_transcoder import ClipTranscoder, TranscodeTask
from src.application.interfaces.delivery import (
    DeliverySession,
    DeliverySink,
    OutputChannel,
)
from src.application.interfaces.format_resolver import FormatResolver
from src.application.interfaces.stream_source import StreamHandle, StreamSource

__all__ = [
    "FormatResolver",
    "StreamSource",
    "StreamHandle",
    "ClipTranscoder",
    "TranscodeTask",
    "DeliverySink",
    "DeliverySession",
    "OutputChannel",
]
