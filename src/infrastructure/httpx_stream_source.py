"""httpx によるストリーム取得"""

from typing import AsyncIterator

import httpx

from src.domain.entities import MediaFormat
from src.domain.exceptions import StreamOpenError
from src.infrastructure.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


def with_begin_offset(url: str, start_offset_sec: float) -> str:
    """
    粗いシーク用に begin パラメータ（ミリ秒）を付与したURLを返す

    Example:
        with_begin_offset("https://host/videoplayback?id=1", 30)
        → "https://host/videoplayback?id=1&begin=30000"
    """
    if start_offset_sec <= 0:
        return url
    begin_ms = int(start_offset_sec * 1000)
    return str(httpx.URL(url).copy_merge_params({"begin": str(begin_ms)}))


class HttpxStreamHandle:
    """httpx のストリーミングレスポンスを保持するハンドル"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        response: httpx.Response,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self._client = client
        self._response = response
        self._chunk_size = chunk_size
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def status_code(self) -> int:
        return self._response.status_code

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        if self._closed:
            return
        async for chunk in self._response.aiter_bytes(self._chunk_size):
            yield chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


class HttpxStreamSource:
    """MediaFormat のURLをストリーミングで開く"""

    def __init__(
        self,
        connect_timeout: float = 10.0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            connect_timeout: 接続タイムアウト（秒）。読み取りは無制限
            chunk_size: 読み取り単位（バイト）
            transport: httpxのトランスポート（テスト用の差し替え）
        """
        self.timeout = httpx.Timeout(None, connect=connect_timeout)
        self.chunk_size = chunk_size
        self.transport = transport

    async def open(
        self,
        media_format: MediaFormat,
        start_offset_sec: float = 0.0,
        proxy: str | None = None,
    ) -> HttpxStreamHandle:
        """
        フォーマットのストリームを開く

        Args:
            media_format: 対象フォーマット
            start_offset_sec: 粗いシーク位置（秒）
            proxy: 経由するプロキシURL

        Returns:
            読み取り前のHttpxStreamHandle

        Raises:
            StreamOpenError: 接続失敗、または上流がエラーステータスを返した
        """
        url = with_begin_offset(media_format.url, start_offset_sec)
        logger.debug(
            f"[Stream] オープン: format_id={media_format.format_id} "
            f"offset={start_offset_sec:g}s proxy={'on' if proxy else 'off'}"
        )

        client = httpx.AsyncClient(
            proxy=proxy,
            timeout=self.timeout,
            follow_redirects=True,
            headers=media_format.http_headers,
            transport=self.transport,
        )
        try:
            request = client.build_request("GET", url)
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            raise StreamOpenError(f"Failed to open stream: {e}") from e

        if response.is_error:
            status_code = response.status_code
            await response.aclose()
            await client.aclose()
            raise StreamOpenError(
                f"Upstream returned HTTP {status_code}",
                status_code=status_code,
            )

        return HttpxStreamHandle(client, response, chunk_size=self.chunk_size)
