"""コマンドライン エントリーポイント"""

import argparse
import asyncio
import contextlib
import signal
import sys
from pathlib import Path

# プロジェクトルートをパスに追加
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# .envファイルを最初に読み込む（PROXY_URL等の環境変数を設定するため）
from dotenv import load_dotenv
load_dotenv(project_root / ".env")

from config.settings import Settings, get_settings
from src.application.usecases.extract_clip import (
    ExtractClipConfig,
    ExtractClipUseCase,
    to_client_error,
)
from src.domain.entities import DeliveryOutcome
from src.domain.exceptions import DeliveryAbortedError
from src.infrastructure.ffmpeg_transcoder import FfmpegClipTranscoder
from src.infrastructure.file_delivery import FileDeliverySink, FileOutputChannel
from src.infrastructure.httpx_stream_source import HttpxStreamSource
from src.infrastructure.logging_config import get_logger, parse_log_level, setup_logging
from src.infrastructure.temp_storage import TempStorage
from src.infrastructure.ytdlp_format_resolver import YtdlpFormatResolver

logger = get_logger(__name__)


def init_usecase(settings: Settings) -> ExtractClipUseCase:
    """DIでユースケースを組み立て"""
    temp_storage = TempStorage(settings.TEMP_DIR)
    temp_storage.ensure_root()

    return ExtractClipUseCase(
        format_resolver=YtdlpFormatResolver(),
        stream_source=HttpxStreamSource(
            connect_timeout=settings.STREAM_CONNECT_TIMEOUT,
            chunk_size=settings.CHUNK_SIZE,
        ),
        transcoder=FfmpegClipTranscoder(
            ffmpeg_path=settings.FFMPEG_PATH,
            ffprobe_path=settings.FFPROBE_PATH or None,
            duration_pad_sec=settings.DURATION_PAD_SEC,
        ),
        delivery_sink=FileDeliverySink(chunk_size=settings.CHUNK_SIZE),
        temp_storage=temp_storage,
        config=ExtractClipConfig(
            coarse_seek=settings.COARSE_SEEK,
            max_clip_duration_sec=settings.MAX_CLIP_DURATION_SEC,
            proxy=settings.proxy_url(),
        ),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="yt-clip",
        description="Download a time-bounded clip of a YouTube video as MP4.",
    )
    parser.add_argument("video", help="YouTube link or video id")
    parser.add_argument("-s", "--start", required=True, help="start offset in seconds")
    parser.add_argument("-d", "--duration", required=True, help="clip length in seconds")
    parser.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=Path("."),
        help="directory to write the clip into (default: current directory)",
    )
    return parser


async def run(args: argparse.Namespace, usecase: ExtractClipUseCase) -> int:
    channel = FileOutputChannel(args.output_dir)

    # Ctrl-C はクライアント切断として扱い、ffmpegを即座に止める
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, channel.disconnect)

    try:
        result = await usecase.execute(args.video, args.start, args.duration, channel)
    except DeliveryAbortedError:
        logger.info("中断しました")
        return 130
    except Exception as e:
        client_error = to_client_error(e)
        if not client_error.is_client_fault:
            logger.error(f"[Clip] 失敗: {type(e).__name__}: {e}")
        print(f"error: {client_error.message}", file=sys.stderr)
        return 1
    finally:
        channel.close()
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)

    if result.outcome is DeliveryOutcome.ABORTED:
        if channel.path is not None:
            channel.path.unlink(missing_ok=True)
        logger.info("中断しました")
        return 130

    print(channel.path)
    return 0


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    setup_logging(level=parse_log_level(settings.LOG_LEVEL))

    args = build_parser().parse_args(argv)
    usecase = init_usecase(settings)
    return asyncio.run(run(args, usecase))


if __name__ == "__main__":
    sys.exit(main())
