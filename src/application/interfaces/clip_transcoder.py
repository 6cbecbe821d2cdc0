"""クリップ変換インターフェース"""

from pathlib import Path
from typing import Protocol

from src.application.interfaces.stream_source import StreamHandle


class TranscodeTask(Protocol):
    """実行中の外部プロセスをラップしたタスク"""

    @property
    def is_running(self) -> bool:
        ...

    async def wait(self) -> None:
        """
        プロセスの終了を待つ

        Raises:
            TranscodeError: プロセスがエラーを報告、または非ゼロで終了
        """
        ...

    async def kill(self) -> None:
        """プロセスを強制終了する（冪等）"""
        ...


class ClipTranscoder(Protocol):
    """ストリームを指定区間だけMP4に再多重化するインターフェース"""

    async def start(
        self,
        stream: StreamHandle,
        seek_sec: float,
        duration_sec: float,
        destination: Path,
    ) -> TranscodeTask:
        """
        外部プロセスを起動する

        Args:
            stream: 入力ストリーム
            seek_sec: 入力に対する精密シーク（秒）
            duration_sec: 出力の長さ（秒、パディングは実装側で加算）
            destination: 出力ファイルパス（既存ファイルは上書き）

        Returns:
            TranscodeTask

        起動待ちの間にキャンセルされた場合、起動したプロセスは実装側で終了させる
        """
        ...
