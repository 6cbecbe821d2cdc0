"""ffmpeg によるクリップ再多重化（再エンコードなし）"""

import asyncio
import contextlib
import subprocess
from collections import deque
from pathlib import Path

from src.application.interfaces.stream_source import StreamHandle
from src.domain.entities import TranscodeState
from src.domain.exceptions import TranscodeError
from src.infrastructure.logging_config import get_logger

logger = get_logger(__name__)

# 最終フレームの欠落を防ぐため出力長に加算する秒数
DEFAULT_DURATION_PAD_SEC = 1.0

# エラーメッセージに含めるstderrの末尾行数
STDERR_TAIL_LINES = 20


def format_ffmpeg_time(seconds: float) -> str:
    """秒を ffmpeg の時間指定（HH:MM:SS.mmm）に変換"""
    total_ms = int(round(seconds * 1000))
    total_seconds, milliseconds = divmod(total_ms, 1000)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{milliseconds:03d}"


def build_ffmpeg_command(
    ffmpeg_path: str,
    seek_sec: float,
    duration_sec: float,
    destination: Path,
) -> list[str]:
    """
    標準入力のストリームを指定区間だけMP4に再多重化するコマンドを構築

    Args:
        ffmpeg_path: ffmpegの実行パス
        seek_sec: 入力に対する精密シーク（秒）
        duration_sec: 出力長（パディング込み、秒）
        destination: 出力ファイルパス
    """
    return [
        ffmpeg_path,
        "-hide_banner",
        "-nostats",
        "-y",  # 上書き許可
        "-ss",
        format_ffmpeg_time(seek_sec),  # 入力側シーク
        "-i",
        "pipe:0",
        "-t",
        format_ffmpeg_time(duration_sec),  # 切り出し長さ
        "-c",
        "copy",  # 再エンコードなし（高速）
        "-avoid_negative_ts",
        "make_zero",  # 負のタイムスタンプを0起点に
        "-movflags",
        "+faststart",  # Web再生用最適化
        "-f",
        "mp4",
        str(destination),
    ]


def is_valid_mp4(file_path: Path, ffprobe_path: str = "ffprobe") -> bool:
    """
    MP4ファイルが有効かどうかを確認（映像ストリームの存在チェック）

    Args:
        file_path: チェックするファイルパス
        ffprobe_path: ffprobeの実行パス

    Returns:
        有効なMP4ならTrue
    """
    if not file_path.exists() or file_path.stat().st_size == 0:
        return False

    try:
        result = subprocess.run(
            [
                ffprobe_path,
                "-v", "error",
                "-select_streams", "v:0",
                "-show_entries", "stream=codec_type",
                "-of", "csv=p=0",
                str(file_path),
            ],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"MP4検証エラー: {file_path} - {e}")
        return False
    # 出力に "video" が含まれていれば有効
    return "video" in result.stdout


class FfmpegTranscodeTask:
    """
    ffmpeg プロセスをラップしたタスク（CREATED → RUNNING → COMPLETED | FAILED）

    - 入力ストリームを標準入力に流し込むポンプ
    - stderr をログに流すリーダー
    - プロセス終了を監視し、結果を一度だけ確定するスーパーバイザー
    """

    def __init__(
        self,
        command: list[str],
        stream: StreamHandle,
        destination: Path,
        ffprobe_path: str | None = None,
    ):
        self.command = command
        self.stream = stream
        self.destination = destination
        self.ffprobe_path = ffprobe_path
        self.state = TranscodeState.CREATED
        self.process: asyncio.subprocess.Process | None = None
        self._killed = False
        self._pump_error: BaseException | None = None
        self._stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._pump: asyncio.Task | None = None
        self._stderr_reader: asyncio.Task | None = None
        self._completion: asyncio.Task | None = None

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process is not None else None

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def launch(self) -> None:
        """
        プロセスを起動し、入出力の監視を始める

        起動待ちの間に呼び出し側がキャンセルされても、起動したプロセスは
        終了させてからキャンセルを伝播する。

        Raises:
            TranscodeError: ffmpegを起動できない
        """
        if self.state is not TranscodeState.CREATED:
            raise RuntimeError(f"ffmpeg task already {self.state.value}")

        spawn = asyncio.ensure_future(
            asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        )
        try:
            process = await asyncio.shield(spawn)
        except asyncio.CancelledError:
            self.state = TranscodeState.FAILED
            with contextlib.suppress(OSError):
                orphan = await spawn
                logger.info(f"[ffmpeg] 起動中にキャンセル pid={orphan.pid}")
                with contextlib.suppress(ProcessLookupError):
                    orphan.kill()
                await orphan.wait()
            raise
        except OSError as e:
            self.state = TranscodeState.FAILED
            raise TranscodeError(f"Failed to start ffmpeg: {e}") from e

        self.process = process
        self.state = TranscodeState.RUNNING
        self._pump = asyncio.create_task(self._pump_input())
        self._stderr_reader = asyncio.create_task(self._read_stderr())
        self._completion = asyncio.create_task(self._supervise())

    async def _pump_input(self) -> None:
        stdin = self.process.stdin
        try:
            async for chunk in self.stream.iter_bytes():
                stdin.write(chunk)
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # -t の長さに達すると ffmpeg は入力を読むのをやめる
            logger.debug(f"[ffmpeg] 入力パイプ終了 pid={self.pid}")
        except Exception as e:
            self._pump_error = e
            logger.warning(f"[ffmpeg] 入力ストリーム読み取りエラー: {e}")
        finally:
            with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                stdin.close()

    async def _read_stderr(self) -> None:
        async for raw in self.process.stderr:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                self._stderr_tail.append(line)
                logger.debug(f"[ffmpeg] {line}")

    async def _supervise(self) -> None:
        returncode = await self.process.wait()

        # プロセス終了後も上流の読み取りで待機し続けないようにする
        if not self._pump.done():
            self._pump.cancel()
        await asyncio.gather(self._pump, self._stderr_reader, return_exceptions=True)

        if self._killed:
            self.state = TranscodeState.FAILED
            raise TranscodeError("ffmpeg was terminated", returncode=returncode)
        if returncode != 0:
            self.state = TranscodeState.FAILED
            tail = " / ".join(self._stderr_tail)
            raise TranscodeError(
                f"ffmpeg exited with code {returncode}: {tail}",
                returncode=returncode,
            )
        if self._pump_error is not None:
            self.state = TranscodeState.FAILED
            raise TranscodeError(f"Input stream failed: {self._pump_error}")
        if not await self._output_is_valid():
            self.state = TranscodeState.FAILED
            raise TranscodeError(
                f"Output file is invalid or incomplete: {self.destination}"
            )

        self.state = TranscodeState.COMPLETED
        logger.info(f"[ffmpeg] 完了 pid={self.pid} → {self.destination.name}")

    async def _output_is_valid(self) -> bool:
        if self.ffprobe_path is None:
            return self.destination.exists() and self.destination.stat().st_size > 0
        return await asyncio.to_thread(is_valid_mp4, self.destination, self.ffprobe_path)

    async def wait(self) -> None:
        """
        プロセスの終了を待つ

        結果はスーパーバイザーで一度だけ確定し、何度awaitしても同じ結果になる。
        呼び出し側がキャンセルされてもプロセス監視は継続する。

        Raises:
            TranscodeError: エラー終了、強制終了、入力ストリーム失敗、未起動
        """
        if self._completion is None:
            raise TranscodeError("ffmpeg was not started")
        await asyncio.shield(self._completion)

    async def kill(self) -> None:
        """プロセスを強制終了し、終了を確認する（冪等）"""
        if self.process is None:
            # 未起動のまま破棄
            self._killed = True
            self.state = TranscodeState.FAILED
            return
        if self.is_running:
            self._killed = True
            logger.info(f"[ffmpeg] 強制終了 pid={self.pid}")
            with contextlib.suppress(ProcessLookupError):
                self.process.kill()
        await self.process.wait()
        # 結果は呼び出し元が既に受け取っているか、ここで破棄する
        with contextlib.suppress(TranscodeError, asyncio.CancelledError):
            await self._completion


class FfmpegClipTranscoder:
    """ffmpeg を使用したクリップ再多重化"""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str | None = None,
        duration_pad_sec: float = DEFAULT_DURATION_PAD_SEC,
    ):
        """
        Args:
            ffmpeg_path: ffmpegの実行パス
            ffprobe_path: 出力検証に使うffprobeの実行パス（Noneならサイズのみ確認）
            duration_pad_sec: 出力長に加算するパディング（秒）
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.duration_pad_sec = duration_pad_sec

    async def start(
        self,
        stream: StreamHandle,
        seek_sec: float,
        duration_sec: float,
        destination: Path,
    ) -> FfmpegTranscodeTask:
        """
        ffmpeg を起動し、ストリームを標準入力に接続する

        Args:
            stream: 入力ストリーム
            seek_sec: 精密シーク（秒）
            duration_sec: 要求されたクリップ長（秒）
            destination: 出力ファイルパス

        Returns:
            実行中のFfmpegTranscodeTask

        Raises:
            TranscodeError: ffmpegを起動できない
        """
        cmd = build_ffmpeg_command(
            self.ffmpeg_path,
            seek_sec=seek_sec,
            duration_sec=duration_sec + self.duration_pad_sec,
            destination=destination,
        )
        logger.debug(f"[ffmpeg] コマンド: {' '.join(cmd)}")

        task = FfmpegTranscodeTask(
            cmd,
            stream,
            destination,
            ffprobe_path=self.ffprobe_path,
        )
        await task.launch()

        logger.info(
            f"[ffmpeg] 開始 pid={task.pid} seek={seek_sec:g}s "
            f"duration={duration_sec:g}s(+{self.duration_pad_sec:g}s)"
        )
        return task
