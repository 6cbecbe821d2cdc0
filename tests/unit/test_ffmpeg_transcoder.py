"""ffmpeg クリップ再多重化のテスト"""

import asyncio
import stat
from pathlib import Path
from typing import AsyncIterator

import pytest

from src.domain.entities import TranscodeState
from src.domain.exceptions import TranscodeError
from src.infrastructure.ffmpeg_transcoder import (
    FfmpegClipTranscoder,
    FfmpegTranscodeTask,
    build_ffmpeg_command,
    format_ffmpeg_time,
)

# 最後の引数（出力パス）に標準入力の内容を書き出す ffmpeg の代役
FAKE_FFMPEG_OK = """#!/bin/sh
for last; do :; done
cat > "$last"
exit 0
"""

# 受け取った引数を出力パスに書き出す
FAKE_FFMPEG_ECHO_ARGS = """#!/bin/sh
for last; do :; done
cat > /dev/null
echo "$@" > "$last"
"""

FAKE_FFMPEG_FAIL = """#!/bin/sh
cat > /dev/null
echo "pipe:0: Invalid data found when processing input" >&2
exit 1
"""

FAKE_FFMPEG_HANG = """#!/bin/sh
exec sleep 30
"""


def _write_script(tmp_path: Path, body: str) -> str:
    script = tmp_path / "ffmpeg"
    script.write_text(body)
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return str(script)


class FakeStream:
    """固定のバイト列を返すストリーム"""

    def __init__(self, chunks: list[bytes]):
        self.chunks = chunks
        self.is_closed = False

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            yield chunk

    async def aclose(self) -> None:
        self.is_closed = True


class TestFormatFfmpegTime:
    """ffmpeg 時間指定フォーマット"""

    def test_hours(self) -> None:
        assert format_ffmpeg_time(3661.5) == "01:01:01.500"

    def test_zero(self) -> None:
        assert format_ffmpeg_time(0) == "00:00:00.000"

    def test_rounding(self) -> None:
        assert format_ffmpeg_time(10.9996) == "00:00:11.000"


class TestBuildFfmpegCommand:
    """コマンド構築"""

    def test_remux_flags(self) -> None:
        cmd = build_ffmpeg_command("ffmpeg", 30, 11, Path("/tmp/out.mp4"))

        assert cmd[0] == "ffmpeg"
        assert "-y" in cmd
        assert cmd[cmd.index("-c") + 1] == "copy"
        assert cmd[cmd.index("-avoid_negative_ts") + 1] == "make_zero"
        assert cmd[cmd.index("-movflags") + 1] == "+faststart"
        assert cmd[-1] == "/tmp/out.mp4"

    def test_seek_before_input(self) -> None:
        """シークは入力側に適用"""
        cmd = build_ffmpeg_command("ffmpeg", 30, 11, Path("out.mp4"))
        assert cmd.index("-ss") < cmd.index("-i")
        assert cmd[cmd.index("-ss") + 1] == "00:00:30.000"
        assert cmd[cmd.index("-i") + 1] == "pipe:0"
        assert cmd[cmd.index("-t") + 1] == "00:00:11.000"


class TestFfmpegClipTranscoder:
    """外部プロセスのライフサイクル（ffmpegの代役スクリプトを使用）"""

    @pytest.mark.asyncio
    async def test_duration_pad(self, tmp_path: Path) -> None:
        """要求長にパディングを加算して -t に渡す"""
        transcoder = FfmpegClipTranscoder(
            ffmpeg_path=_write_script(tmp_path, FAKE_FFMPEG_ECHO_ARGS),
            duration_pad_sec=1.0,
        )
        destination = tmp_path / "out.mp4"
        task = await transcoder.start(FakeStream([b"x"]), 30, 10, destination)
        await task.wait()

        args = destination.read_text()
        assert "-ss 00:00:30.000" in args
        assert "-t 00:00:11.000" in args

    @pytest.mark.asyncio
    async def test_completed(self, tmp_path: Path) -> None:
        transcoder = FfmpegClipTranscoder(ffmpeg_path=_write_script(tmp_path, FAKE_FFMPEG_OK))
        destination = tmp_path / "out.mp4"

        task = await transcoder.start(FakeStream([b"abc", b"def"]), 0, 5, destination)
        await task.wait()

        assert task.state is TranscodeState.COMPLETED
        assert not task.is_running
        assert destination.read_bytes() == b"abcdef"

    @pytest.mark.asyncio
    async def test_wait_twice(self, tmp_path: Path) -> None:
        """終端は一度だけ確定し、再度awaitしても同じ結果"""
        transcoder = FfmpegClipTranscoder(ffmpeg_path=_write_script(tmp_path, FAKE_FFMPEG_OK))
        task = await transcoder.start(FakeStream([b"abc"]), 0, 5, tmp_path / "out.mp4")

        await task.wait()
        await task.wait()

        assert task.state is TranscodeState.COMPLETED

    @pytest.mark.asyncio
    async def test_error_exit(self, tmp_path: Path) -> None:
        transcoder = FfmpegClipTranscoder(ffmpeg_path=_write_script(tmp_path, FAKE_FFMPEG_FAIL))

        task = await transcoder.start(FakeStream([b"abc"]), 0, 5, tmp_path / "out.mp4")
        with pytest.raises(TranscodeError, match="Invalid data") as exc_info:
            await task.wait()

        assert exc_info.value.returncode == 1
        assert task.state is TranscodeState.FAILED

    @pytest.mark.asyncio
    async def test_empty_output(self, tmp_path: Path) -> None:
        """正常終了でも出力が空なら失敗"""
        transcoder = FfmpegClipTranscoder(ffmpeg_path=_write_script(tmp_path, FAKE_FFMPEG_OK))

        task = await transcoder.start(FakeStream([]), 0, 5, tmp_path / "out.mp4")
        with pytest.raises(TranscodeError, match="invalid or incomplete"):
            await task.wait()

    @pytest.mark.asyncio
    async def test_kill(self, tmp_path: Path) -> None:
        """強制終了後はプロセスが残らない"""
        transcoder = FfmpegClipTranscoder(ffmpeg_path=_write_script(tmp_path, FAKE_FFMPEG_HANG))

        task = await transcoder.start(FakeStream([b"abc"]), 0, 5, tmp_path / "out.mp4")
        assert task.is_running

        await task.kill()
        await task.kill()

        assert not task.is_running
        assert task.state is TranscodeState.FAILED
        with pytest.raises(TranscodeError, match="terminated"):
            await task.wait()

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path: Path) -> None:
        transcoder = FfmpegClipTranscoder(ffmpeg_path=str(tmp_path / "no-such-ffmpeg"))

        with pytest.raises(TranscodeError, match="Failed to start"):
            await transcoder.start(FakeStream([b"abc"]), 0, 5, tmp_path / "out.mp4")

    @pytest.mark.asyncio
    async def test_created_before_launch(self, tmp_path: Path) -> None:
        """起動前は CREATED、起動後は RUNNING"""
        script = _write_script(tmp_path, FAKE_FFMPEG_HANG)
        task = FfmpegTranscodeTask([script], FakeStream([b"abc"]), tmp_path / "out.mp4")

        assert task.state is TranscodeState.CREATED
        assert not task.is_running
        assert task.pid is None
        with pytest.raises(TranscodeError, match="not started"):
            await task.wait()

        await task.launch()
        assert task.state is TranscodeState.RUNNING
        assert task.is_running

        await task.kill()
        assert task.state is TranscodeState.FAILED

    @pytest.mark.asyncio
    async def test_missing_executable_state(self, tmp_path: Path) -> None:
        task = FfmpegTranscodeTask(
            [str(tmp_path / "no-such-ffmpeg")], FakeStream([]), tmp_path / "out.mp4"
        )

        with pytest.raises(TranscodeError):
            await task.launch()

        assert task.state is TranscodeState.FAILED
        assert task.process is None

    @pytest.mark.asyncio
    async def test_cancel_while_spawning(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """起動待ちの間にキャンセルされても、起動したプロセスを残さない"""
        real_exec = asyncio.create_subprocess_exec
        spawning = asyncio.Event()
        spawned: list[asyncio.subprocess.Process] = []

        async def slow_exec(*args, **kwargs):
            spawning.set()
            await asyncio.sleep(0.05)
            process = await real_exec(*args, **kwargs)
            spawned.append(process)
            return process

        monkeypatch.setattr(asyncio, "create_subprocess_exec", slow_exec)
        transcoder = FfmpegClipTranscoder(ffmpeg_path=_write_script(tmp_path, FAKE_FFMPEG_HANG))

        starting = asyncio.create_task(
            transcoder.start(FakeStream([b"abc"]), 0, 5, tmp_path / "out.mp4")
        )
        await spawning.wait()
        starting.cancel()

        with pytest.raises(asyncio.CancelledError):
            await starting

        assert len(spawned) == 1
        assert spawned[0].returncode is not None
