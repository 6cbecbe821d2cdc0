"""yt-dlp ベースのフォーマット解決"""

import asyncio
from typing import Any

import yt_dlp

from src.domain.entities import MediaFormat
from src.domain.exceptions import (
    FormatResolveError,
    NotFoundError,
    UnsupportedFormatError,
)
from src.infrastructure.logging_config import get_logger

logger = get_logger(__name__)

# HTTPで直接取得できるプロトコルのみ対象（HLS/DASHマニフェストは除外）
STREAMABLE_PROTOCOLS = {"http", "https"}

# 動画自体が存在しない・公開されていないことを示す yt-dlp のエラーメッセージ
MISSING_VIDEO_MARKERS = (
    "video unavailable",
    "private video",
    "video is not available",
    "does not exist",
    "has been removed",
    "incomplete youtube id",
)


def is_missing_video_error(error: Exception) -> bool:
    """yt-dlp のエラーが動画の不在によるものか（ネットワーク障害等と区別）"""
    message = str(error).lower()
    return any(marker in message for marker in MISSING_VIDEO_MARKERS)


def _has_track(codec: str | None) -> bool:
    return codec not in (None, "none")


def _quality_of(fmt: dict[str, Any]) -> float:
    """yt-dlpのquality値、なければ解像度・ビットレートで代用"""
    for key in ("quality", "height", "tbr"):
        value = fmt.get(key)
        if value is not None:
            return float(value)
    return -1.0


def to_media_format(fmt: dict[str, Any]) -> MediaFormat:
    """yt-dlpのformat辞書をMediaFormatに変換"""
    return MediaFormat(
        format_id=str(fmt.get("format_id", "")),
        url=fmt.get("url", ""),
        has_video=_has_track(fmt.get("vcodec")),
        has_audio=_has_track(fmt.get("acodec")),
        quality=_quality_of(fmt),
        container=fmt.get("ext"),
        video_codec=fmt.get("vcodec"),
        audio_codec=fmt.get("acodec"),
        http_headers=dict(fmt.get("http_headers") or {}),
    )


def select_best_combined(formats: list[MediaFormat]) -> MediaFormat | None:
    """
    映像+音声を含むフォーマットのうち最高品質のものを選ぶ

    同品質の場合は先に出現したものを優先（並べ替えない）
    """
    best: MediaFormat | None = None
    for fmt in formats:
        if not fmt.is_combined:
            continue
        if best is None or fmt.quality > best.quality:
            best = fmt
    return best


class YtdlpFormatResolver:
    """yt-dlp の extract_info を使用したフォーマット解決"""

    def __init__(self) -> None:
        # yt-dlp のオプション（メタデータ取得のみ）
        self.ydl_opts = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
        }

    def _extract_info(self, video_url: str) -> dict[str, Any] | None:
        with yt_dlp.YoutubeDL(self.ydl_opts) as ydl:
            return ydl.extract_info(video_url, download=False)

    async def resolve(self, video_url: str) -> MediaFormat:
        """
        動画のフォーマット一覧を取得し、映像+音声の最高品質フォーマットを選択

        Args:
            video_url: YouTube動画URL

        Returns:
            選択されたMediaFormat

        Raises:
            NotFoundError: 動画が見つからない
            FormatResolveError: ネットワーク/プロキシ等で情報を取得できない
            UnsupportedFormatError: 映像と音声を両方含むフォーマットがない
        """
        logger.debug(f"[Format] 解決開始: {video_url}")

        try:
            # yt-dlp は同期APIのためスレッドで実行
            info = await asyncio.to_thread(self._extract_info, video_url)
        except yt_dlp.utils.DownloadError as e:
            if is_missing_video_error(e):
                raise NotFoundError(f"Video not found: {video_url}") from e
            raise FormatResolveError(f"Failed to extract formats: {e}") from e

        if not info:
            raise NotFoundError(f"Video not found: {video_url}")

        formats = [
            to_media_format(fmt)
            for fmt in info.get("formats") or []
            if fmt.get("url")
            and (fmt.get("protocol") or "https") in STREAMABLE_PROTOCOLS
        ]
        logger.debug(f"  取得フォーマット数: {len(formats)}")

        selected = select_best_combined(formats)
        if selected is None:
            raise UnsupportedFormatError(
                f"No format with both audio and video: {video_url}"
            )

        logger.info(
            f"[Format] 選択: format_id={selected.format_id} "
            f"ext={selected.container} quality={selected.quality:g}"
        )
        return selected
