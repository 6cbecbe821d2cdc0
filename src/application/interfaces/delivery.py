"""クライアントへの配信インターフェース"""

from pathlib import Path
from typing import Protocol

from src.domain.entities import DeliveryOutcome


class OutputChannel(Protocol):
    """クライアントへの出力チャネル（HTTPレスポンス等）"""

    def set_header(self, name: str, value: str) -> None:
        ...

    async def write(self, chunk: bytes) -> None:
        """
        Raises:
            ConnectionError / OSError: クライアント切断
        """
        ...

    @property
    def is_disconnected(self) -> bool:
        ...

    async def wait_disconnected(self) -> None:
        """クライアントが切断するまで待つ"""
        ...


class DeliverySession(Protocol):
    """1つの一時ファイルを1つのチャネルに流すセッション"""

    @property
    def bytes_sent(self) -> int:
        ...

    async def run(self) -> DeliveryOutcome:
        """全バイトを送信しFINISHED、チャネル側エラーならABORTEDを返す"""
        ...

    def close(self) -> None:
        """読み取りストリームを閉じる（冪等）"""
        ...


class DeliverySink(Protocol):
    """配信セッションを生成するインターフェース"""

    def open(
        self,
        source_path: Path,
        channel: OutputChannel,
        file_name: str,
    ) -> DeliverySession:
        ...
