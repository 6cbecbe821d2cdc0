"""フォーマット解決インターフェース"""

from typing import Protocol

from src.domain.entities import MediaFormat


class FormatResolver(Protocol):
    """動画の再生可能フォーマットを解決するインターフェース"""

    async def resolve(self, video_url: str) -> MediaFormat:
        """
        映像+音声を含む最高品質のフォーマットを選択

        Args:
            video_url: YouTube動画URL

        Returns:
            選択されたMediaFormat

        Raises:
            NotFoundError: 動画が見つからない
            UnsupportedFormatError: 映像と音声を両方含むフォーマットがない
        """
        ...
