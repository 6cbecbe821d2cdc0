"""リソース解放のテスト"""

from pathlib import Path

import pytest

from src.application.usecases.resource_janitor import JobResources, ResourceJanitor


class RecordingTask:
    def __init__(self, calls: list[str]):
        self.calls = calls
        self.is_running = True

    async def wait(self) -> None:
        pass

    async def kill(self) -> None:
        self.calls.append("kill")
        self.is_running = False


class RecordingStream:
    def __init__(self, calls: list[str], fail: bool = False):
        self.calls = calls
        self.fail = fail
        self.is_closed = False

    async def aclose(self) -> None:
        self.calls.append("stream")
        if self.fail:
            raise RuntimeError("connection already reset")
        self.is_closed = True


class RecordingDelivery:
    def __init__(self, calls: list[str]):
        self.calls = calls

    def close(self) -> None:
        self.calls.append("delivery")


class TestResourceJanitor:
    """ResourceJanitor.cleanup"""

    @pytest.mark.asyncio
    async def test_release_order(self, tmp_path: Path) -> None:
        """プロセス → ストリーム → 読み取り → 一時ファイル の順"""
        calls: list[str] = []
        temp = tmp_path / "temp_1.mp4"
        temp.write_bytes(b"x")
        resources = JobResources(
            transcode=RecordingTask(calls),
            stream=RecordingStream(calls),
            delivery=RecordingDelivery(calls),
            temp_path=temp,
        )

        await ResourceJanitor().cleanup(resources)

        assert calls == ["kill", "stream", "delivery"]
        assert not temp.exists()
        assert resources.released

    @pytest.mark.asyncio
    async def test_idempotent(self, tmp_path: Path) -> None:
        """2回呼んでも二重解放しない"""
        calls: list[str] = []
        resources = JobResources(
            transcode=RecordingTask(calls),
            stream=RecordingStream(calls),
            temp_path=tmp_path / "temp_1.mp4",
        )
        janitor = ResourceJanitor()

        await janitor.cleanup(resources)
        await janitor.cleanup(resources)

        assert calls == ["kill", "stream"]

    @pytest.mark.asyncio
    async def test_empty_resources(self) -> None:
        await ResourceJanitor().cleanup(JobResources())

    @pytest.mark.asyncio
    async def test_missing_temp_file(self, tmp_path: Path) -> None:
        """一時ファイルが既にない場合は無視"""
        await ResourceJanitor().cleanup(JobResources(temp_path=tmp_path / "gone.mp4"))

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(
        self,
        tmp_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """解放失敗はログのみで、後続の解放は続行する"""
        calls: list[str] = []
        temp = tmp_path / "temp_1.mp4"
        temp.write_bytes(b"x")
        resources = JobResources(stream=RecordingStream(calls, fail=True), temp_path=temp)

        await ResourceJanitor().cleanup(resources)

        assert not temp.exists()
        assert "connection already reset" in caplog.text

    @pytest.mark.asyncio
    async def test_delete_error_logged(
        self,
        tmp_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """ファイル以外の削除失敗はCleanupErrorとしてログ"""
        directory = tmp_path / "temp_dir.mp4"
        directory.mkdir()

        await ResourceJanitor().cleanup(JobResources(temp_path=directory))

        assert "Failed to delete" in caplog.text
