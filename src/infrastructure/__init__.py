# Infrastructure Layer
from src.infrastructure.ffmpeg_transcoder import FfmpegClipTranscoder
from src.infrastructure.file_delivery import FileDeliverySink, FileOutputChannel
from src.infrastructure.httpx_stream_source import HttpxStreamSource
from src.infrastructure.temp_storage import TempStorage
from src.infrastructure.ytdlp_format_resolver import YtdlpFormatResolver

__all__ = [
    "YtdlpFormatResolver",
    "HttpxStreamSource",
    "FfmpegClipTranscoder",
    "FileDeliverySink",
    "FileOutputChannel",
    "TempStorage",
]
