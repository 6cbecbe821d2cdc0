"""一時ファイルをクライアントへ配信"""

import asyncio
import re
from pathlib import Path
from typing import BinaryIO

from src.application.interfaces.delivery import OutputChannel
from src.domain.entities import DeliveryOutcome
from src.infrastructure.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
CONTENT_TYPE = "application/octet-stream"
_FILENAME_PATTERN = re.compile(r'filename="([^"]+)"')


def content_disposition(file_name: str) -> str:
    return f'attachment; filename="{file_name}"'


class FileDeliverySession:
    """1つのファイルを1つのチャネルに流す配信セッション"""

    def __init__(
        self,
        source_path: Path,
        channel: OutputChannel,
        file_name: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.source_path = source_path
        self.channel = channel
        self.file_name = file_name
        self.chunk_size = chunk_size
        self._reader: BinaryIO | None = open(source_path, "rb")
        self._bytes_sent = 0
        self._outcome: DeliveryOutcome | None = None

    @property
    def bytes_sent(self) -> int:
        return self._bytes_sent

    @property
    def is_closed(self) -> bool:
        return self._reader is None

    async def run(self) -> DeliveryOutcome:
        """
        ファイルの全バイトをチャネルへ送信

        Returns:
            FINISHED: 全バイト送信完了
            ABORTED: チャネル側エラー（クライアント切断等）

        終端シグナルは一度だけ確定し、再実行しても同じ値を返す

        Raises:
            OSError: 一時ファイルの読み取り失敗（サーバー側の障害）
        """
        if self._outcome is not None:
            return self._outcome

        self.channel.set_header("Content-Type", CONTENT_TYPE)
        self.channel.set_header("Content-Disposition", content_disposition(self.file_name))

        while True:
            if self.channel.is_disconnected:
                return self._abort("client disconnected")
            if self._reader is None:
                # 送信途中で読み取りストリームが閉じられた
                return self._abort("reader closed")

            chunk = await asyncio.to_thread(self._reader.read, self.chunk_size)
            if not chunk:
                break

            # ABORTED はチャネル側のエラーのみ
            try:
                await self.channel.write(chunk)
            except (ConnectionError, OSError) as e:
                return self._abort(e)
            self._bytes_sent += len(chunk)

        self._outcome = DeliveryOutcome.FINISHED
        logger.info(f"[Delivery] 完了: {self.file_name} ({self._bytes_sent} bytes)")
        return self._outcome

    def _abort(self, reason: object) -> DeliveryOutcome:
        logger.info(f"[Delivery] 中断: {self.file_name} ({reason})")
        self._outcome = DeliveryOutcome.ABORTED
        return self._outcome

    def close(self) -> None:
        """読み取りストリームを閉じる（冪等）"""
        if self._reader is None:
            return
        reader, self._reader = self._reader, None
        reader.close()


class FileDeliverySink:
    """一時ファイルから配信セッションを生成"""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size

    def open(
        self,
        source_path: Path,
        channel: OutputChannel,
        file_name: str,
    ) -> FileDeliverySession:
        """
        Raises:
            OSError: ファイルを開けない
        """
        return FileDeliverySession(
            source_path,
            channel,
            file_name,
            chunk_size=self.chunk_size,
        )


class FileOutputChannel:
    """
    ローカルディレクトリに書き出す出力チャネル（CLI用）

    ファイル名は Content-Disposition ヘッダーの filename から決まる
    """

    def __init__(self, directory: Path):
        self.directory = directory
        self.path: Path | None = None
        self.headers: dict[str, str] = {}
        self._file: BinaryIO | None = None
        self._disconnected = asyncio.Event()

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    @property
    def is_disconnected(self) -> bool:
        return self._disconnected.is_set()

    async def wait_disconnected(self) -> None:
        await self._disconnected.wait()

    def disconnect(self) -> None:
        """書き出しを中断する（Ctrl-C等）"""
        self._disconnected.set()

    async def write(self, chunk: bytes) -> None:
        if self.is_disconnected:
            raise ConnectionError("output closed")
        if self._file is None:
            match = _FILENAME_PATTERN.search(self.headers.get("Content-Disposition", ""))
            file_name = match.group(1) if match else "clip.mp4"
            self.directory.mkdir(parents=True, exist_ok=True)
            self.path = self.directory / file_name
            self._file = open(self.path, "wb")
        await asyncio.to_thread(self._file.write, chunk)

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
