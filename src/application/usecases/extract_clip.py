"""メインユースケース: 動画の指定区間をクリップとしてクライアントへ配信"""

import asyncio
import contextlib
import time
from dataclasses import dataclass
from typing import Any

from src.application.interfaces.clip_transcoder import ClipTranscoder, TranscodeTask
from src.application.interfaces.delivery import DeliverySink, OutputChannel
from src.application.interfaces.format_resolver import FormatResolver
from src.application.interfaces.stream_source import StreamSource
from src.application.usecases.resource_janitor import JobResources, ResourceJanitor
from src.domain.entities import (
    ClipRequest,
    ClipResult,
    DeliveryOutcome,
    JobState,
    SeekPlan,
    can_transition,
)
from src.domain.exceptions import (
    DeliveryAbortedError,
    FormatResolveError,
    NotFoundError,
    StreamOpenError,
    TranscodeError,
    UnsupportedFormatError,
    ValidationError,
)
from src.infrastructure.logging_config import LogContext, get_logger, new_job_id
from src.infrastructure.temp_storage import TempStorage, clip_file_name

logger = get_logger(__name__)


@dataclass
class ExtractClipConfig:
    """ユースケースの設定"""

    coarse_seek: bool = True  # ストリームを開始位置から要求するか
    max_clip_duration_sec: float | None = None  # クリップ長の上限（None=無制限）
    proxy: str | None = None  # ストリーム取得に使うプロキシ


class ClipJob:
    """1ジョブの状態遷移を記録する"""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.state = JobState.VALIDATING
        self.context = LogContext(job_id=job_id)

    def transition(self, target: JobState) -> None:
        if not can_transition(self.state, target):
            raise RuntimeError(f"invalid job transition {self.state.value} -> {target.value}")
        logger.debug(f"[Clip] {self.state.value} → {target.value} | {self.context}")
        self.state = target

    def fail(self, error: BaseException) -> None:
        if self.state.is_terminal:
            return
        logger.warning(
            f"[Clip] {self.state.value} で失敗: {type(error).__name__}: {error} | {self.context}"
        )
        self.state = JobState.ERRORED


class ExtractClipUseCase:
    """
    メインユースケース: 動画の指定区間をクリップとして配信

    処理フロー:
    1. 入力検証
    2. yt-dlp でフォーマット解決（映像+音声の最高品質）
    3. ストリームを開く（粗いシーク）
    4. ffmpeg で精密シーク + 区間切り出し + 再多重化 → 一時ファイル
    5. 一時ファイルをクライアントへ配信
    6. プロセス・ストリーム・一時ファイルを解放

    解放はジョブごとに一度だけ、成功・失敗・切断のいずれでも必ず行う。
    """

    def __init__(
        self,
        format_resolver: FormatResolver,
        stream_source: StreamSource,
        transcoder: ClipTranscoder,
        delivery_sink: DeliverySink,
        temp_storage: TempStorage,
        janitor: ResourceJanitor | None = None,
        config: ExtractClipConfig | None = None,
    ):
        self.format_resolver = format_resolver
        self.stream_source = stream_source
        self.transcoder = transcoder
        self.delivery_sink = delivery_sink
        self.temp_storage = temp_storage
        self.janitor = janitor or ResourceJanitor()
        self.config = config or ExtractClipConfig()

    async def execute(
        self,
        video_id: Any,
        start_sec: Any,
        duration_sec: Any,
        channel: OutputChannel,
    ) -> ClipResult:
        """
        メイン実行フロー

        Args:
            video_id: YouTubeリンク or 動画ID
            start_sec: 開始位置（秒）
            duration_sec: クリップ長（秒）
            channel: クライアントへの出力チャネル

        Returns:
            ClipResult（配信中にクライアントが切断した場合は outcome=ABORTED）

        Raises:
            ValidationError: 入力不正（外部呼び出し前に検出）
            NotFoundError / UnsupportedFormatError: フォーマット解決失敗
            FormatResolveError: フォーマット情報の取得失敗（サーバー側）
            StreamOpenError: ストリームを開けない
            TranscodeError: ffmpeg の失敗
            DeliveryAbortedError: 変換中にクライアントが切断
        """
        started = time.time()
        job = ClipJob(new_job_id())

        # Phase 1: 入力検証（リソース確保前）
        try:
            request = ClipRequest.parse(
                video_id,
                start_sec,
                duration_sec,
                max_duration_sec=self.config.max_clip_duration_sec,
            )
        except ValidationError as e:
            job.fail(e)
            raise
        job.context = job.context.update(video_id=request.video_id)
        logger.info(
            f"[Clip] 開始 start={request.start_sec:g}s "
            f"duration={request.duration_sec:g}s | {job.context}"
        )

        # Phase 2: フォーマット解決（リソース確保前）
        job.transition(JobState.RESOLVING)
        try:
            media_format = await self.format_resolver.resolve(request.video_url)
        except Exception as e:
            job.fail(e)
            raise

        # Phase 3-5: ここから先で確保したリソースは必ず解放する
        resources = JobResources()
        try:
            job.transition(JobState.STREAMING)
            plan = SeekPlan.for_start(request.start_sec, self.config.coarse_seek)
            resources.stream = await self.stream_source.open(
                media_format,
                plan.coarse_offset_sec,
                self.config.proxy,
            )

            job.transition(JobState.TRANSCODING)
            resources.temp_path = self.temp_storage.new_clip_path()
            resources.transcode = await self.transcoder.start(
                resources.stream,
                plan.fine_seek_sec,
                request.duration_sec,
                resources.temp_path,
            )
            await self._wait_transcode(resources, channel)

            job.transition(JobState.DELIVERING)
            file_name = clip_file_name(request.start_sec)
            resources.delivery = self.delivery_sink.open(
                resources.temp_path,
                channel,
                file_name,
            )
            outcome = await resources.delivery.run()
            bytes_sent = resources.delivery.bytes_sent
        except BaseException as e:
            job.fail(e)
            raise
        finally:
            await self.janitor.cleanup(resources)

        job.transition(JobState.CLEANED)
        if outcome is DeliveryOutcome.ABORTED:
            # クライアントは既に切断しているため通知せずログのみ
            logger.info(f"[Clip] 配信中に切断 ({bytes_sent} bytes) | {job.context}")
        else:
            logger.info(f"[Clip] 完了 {file_name} ({bytes_sent} bytes) | {job.context}")

        return ClipResult(
            job_id=job.job_id,
            file_name=file_name,
            outcome=outcome,
            bytes_sent=bytes_sent,
            processing_time_sec=time.time() - started,
        )

    async def _wait_transcode(
        self,
        resources: JobResources,
        channel: OutputChannel,
    ) -> None:
        """
        変換完了を待つ。先にクライアントが切断した場合は即座にプロセスを止める

        Raises:
            TranscodeError: 変換失敗
            DeliveryAbortedError: 変換中にクライアントが切断
        """
        task: TranscodeTask = resources.transcode
        waiter = asyncio.ensure_future(task.wait())
        disconnected = asyncio.ensure_future(channel.wait_disconnected())
        try:
            done, _ = await asyncio.wait(
                {waiter, disconnected},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except BaseException:
            waiter.cancel()
            raise
        finally:
            disconnected.cancel()

        if waiter in done:
            waiter.result()
            return

        # 切断: 自然終了を待たずにプロセスとストリームを解放し、終端を確認する
        await self.janitor.cleanup(resources)
        with contextlib.suppress(TranscodeError):
            await waiter
        raise DeliveryAbortedError("Client disconnected during transcoding")


@dataclass(frozen=True)
class ClientError:
    """クライアントに返すエラー（内部詳細は含めない）"""

    status_code: int
    message: str

    @property
    def is_client_fault(self) -> bool:
        return 400 <= self.status_code < 500


def to_client_error(error: BaseException) -> ClientError:
    """例外をクライアント向けのエラーに変換"""
    if isinstance(error, ValidationError):
        return ClientError(400, str(error))
    if isinstance(error, NotFoundError):
        return ClientError(404, "Video not found")
    if isinstance(error, UnsupportedFormatError):
        return ClientError(422, "No downloadable format with both audio and video")
    if isinstance(error, FormatResolveError):
        return ClientError(502, "Failed to look up the video")
    if isinstance(error, StreamOpenError):
        if error.is_client_fault:
            return ClientError(400, "Video stream is not available")
        return ClientError(502, "Failed to open video stream")
    return ClientError(500, "Failed to process the clip")
