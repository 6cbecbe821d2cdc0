"""ドメインエンティティ定義"""

import math
from dataclasses import dataclass, field
from enum import Enum
from numbers import Real
from typing import Any

from src.domain.exceptions import ValidationError
from src.domain.video_links import extract_video_id, is_video_link, to_watch_url


def _to_seconds(name: str, value: Any) -> float:
    """数値または数値文字列を秒(float)に変換"""
    if value is None or value == "":
        raise ValidationError(f"{name} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    if isinstance(value, Real):
        seconds = float(value)
    else:
        try:
            seconds = float(str(value).strip())
        except ValueError as e:
            raise ValidationError(f"{name} must be a number") from e
    if not math.isfinite(seconds):
        raise ValidationError(f"{name} must be a finite number")
    return seconds


@dataclass(frozen=True)
class ClipRequest:
    """検証済みのクリップ抽出リクエスト"""

    video_id: str
    start_sec: float
    duration_sec: float

    def __post_init__(self) -> None:
        if not self.video_id or not is_video_link(self.video_id):
            raise ValidationError("video_id must be a YouTube link or video id")
        if self.start_sec < 0:
            raise ValidationError("start_sec must be non-negative")
        if self.duration_sec <= 0:
            raise ValidationError("duration_sec must be positive")

    @classmethod
    def parse(
        cls,
        video_id: Any,
        start_sec: Any,
        duration_sec: Any,
        max_duration_sec: float | None = None,
    ) -> "ClipRequest":
        """
        生の入力値を検証してClipRequestを生成

        Args:
            video_id: YouTubeリンク or 動画ID
            start_sec: 開始位置（秒）。数値文字列も可
            duration_sec: クリップ長（秒）。数値文字列も可
            max_duration_sec: クリップ長の上限（Noneなら無制限）

        Returns:
            ClipRequest

        Raises:
            ValidationError: 欠落・非数値・範囲外・リンク形式不正
        """
        if not isinstance(video_id, str) or not video_id.strip():
            raise ValidationError("video_id is required")
        request = cls(
            video_id=video_id.strip(),
            start_sec=_to_seconds("start_sec", start_sec),
            duration_sec=_to_seconds("duration_sec", duration_sec),
        )
        if max_duration_sec is not None and request.duration_sec > max_duration_sec:
            raise ValidationError(
                f"duration_sec must not exceed {max_duration_sec:g} seconds"
            )
        return request

    @property
    def video_url(self) -> str:
        """正規化された視聴URL"""
        return to_watch_url(extract_video_id(self.video_id))


@dataclass(frozen=True)
class MediaFormat:
    """動画の1ダウンロード形式（yt-dlpのformatエントリ相当）"""

    format_id: str
    url: str
    has_video: bool
    has_audio: bool
    quality: float  # 大きいほど高品質
    container: str | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    http_headers: dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def is_combined(self) -> bool:
        """映像と音声の両方を含むか"""
        return self.has_video and self.has_audio


@dataclass(frozen=True)
class SeekPlan:
    """
    粗いシーク（ストリーム側）と精密シーク（ffmpeg側）の組み合わせ

    coarse_offset_sec + fine_seek_sec が要求開始位置になる
    """

    coarse_offset_sec: float
    fine_seek_sec: float

    @classmethod
    def for_start(cls, start_sec: float, coarse_seek: bool) -> "SeekPlan":
        if coarse_seek:
            return cls(coarse_offset_sec=start_sec, fine_seek_sec=0.0)
        return cls(coarse_offset_sec=0.0, fine_seek_sec=start_sec)


class JobState(str, Enum):
    """クリップ抽出ジョブの状態"""

    VALIDATING = "validating"
    RESOLVING = "resolving"
    STREAMING = "streaming"
    TRANSCODING = "transcoding"
    DELIVERING = "delivering"
    CLEANED = "cleaned"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.CLEANED, JobState.ERRORED)


# 前進のみ許可（ERROREDは非終端状態から常に遷移可能）
_STATE_ORDER = [
    JobState.VALIDATING,
    JobState.RESOLVING,
    JobState.STREAMING,
    JobState.TRANSCODING,
    JobState.DELIVERING,
    JobState.CLEANED,
]


def can_transition(current: JobState, target: JobState) -> bool:
    """状態遷移が許可されているか"""
    if current.is_terminal:
        return False
    if target is JobState.ERRORED:
        return True
    return _STATE_ORDER.index(target) == _STATE_ORDER.index(current) + 1


class TranscodeState(str, Enum):
    """外部プロセスの状態（Created → Running → Completed | Failed）"""

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class DeliveryOutcome(str, Enum):
    """配信の終端シグナル"""

    FINISHED = "finished"
    ABORTED = "aborted"


@dataclass
class ClipResult:
    """クリップ抽出ジョブの結果"""

    job_id: str
    file_name: str
    outcome: DeliveryOutcome
    bytes_sent: int
    processing_time_sec: float
