"""YouTubeリンク判定ユーティリティ"""

import re

# youtube.com/watch?v=ID, youtu.be/ID, /embed/ID, /v/ID 形式のリンク
YOUTUBE_LINK_PATTERN = re.compile(
    r"^((?:https?:)?//)?((?:www|m)\.)?((?:youtube\.com|youtu\.be))"
    r"(/(?:[\w\-]+\?v=|embed/|v/)?)([\w\-]+)(\S+)?$"
)

# 動画IDのみが渡された場合
VIDEO_ID_PATTERN = re.compile(r"^[\w\-]+$")


def is_video_link(value: str) -> bool:
    """YouTubeリンク、または動画ID単体として認識できるか"""
    if not value:
        return False
    value = value.strip()
    return bool(YOUTUBE_LINK_PATTERN.match(value) or VIDEO_ID_PATTERN.match(value))


def extract_video_id(value: str) -> str:
    """
    リンクまたは動画IDから動画IDを取り出す

    Args:
        value: YouTubeリンク or 動画ID

    Returns:
        動画ID

    Raises:
        ValueError: 認識できない形式

    Example:
        extract_video_id("https://youtu.be/dQw4w9WgXcQ?t=10") → "dQw4w9WgXcQ"
        extract_video_id("abc123") → "abc123"
    """
    value = (value or "").strip()
    if VIDEO_ID_PATTERN.match(value):
        return value

    match = YOUTUBE_LINK_PATTERN.match(value)
    if not match:
        raise ValueError(f"not a recognized video link: {value!r}")
    return match.group(5)


def to_watch_url(video_id: str) -> str:
    """動画IDから正規化された視聴URLを生成"""
    return f"https://www.youtube.com/watch?v={video_id}"
