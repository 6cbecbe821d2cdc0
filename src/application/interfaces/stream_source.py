"""ストリームソースインターフェース"""

from typing import AsyncIterator, Protocol

from src.domain.entities import MediaFormat


class StreamHandle(Protocol):
    """読み取り中のバイトストリーム（ジョブが排他的に所有）"""

    @property
    def is_closed(self) -> bool:
        ...

    def iter_bytes(self) -> AsyncIterator[bytes]:
        """ストリームのバイト列を順に返す"""
        ...

    async def aclose(self) -> None:
        """接続を破棄する（冪等）"""
        ...


class StreamSource(Protocol):
    """ネットワーク上のストリームを開くインターフェース"""

    async def open(
        self,
        media_format: MediaFormat,
        start_offset_sec: float = 0.0,
        proxy: str | None = None,
    ) -> StreamHandle:
        """
        フォーマットのストリームを開く

        Args:
            media_format: 対象フォーマット
            start_offset_sec: 粗いシーク位置（秒）。ミリ秒に変換して上流に要求する
            proxy: 経由するプロキシURL（Noneなら直接接続）

        Returns:
            StreamHandle

        Raises:
            StreamOpenError: ネットワーク/認可エラー
        """
        ...
