"""YouTubeリンク判定のテスト"""

import pytest

from src.domain.video_links import extract_video_id, is_video_link, to_watch_url


class TestVideoLinks:
    """リンク形式の判定と動画ID抽出"""

    @pytest.mark.parametrize(
        "value, video_id",
        [
            ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
            ("https://m.youtube.com/watch?v=dQw4w9WgXcQ&t=30s", "dQw4w9WgXcQ"),
            ("youtube.com/embed/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
            ("https://youtu.be/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
            ("//www.youtube.com/v/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
            ("abc123", "abc123"),
        ],
    )
    def test_extract(self, value: str, video_id: str) -> None:
        assert is_video_link(value)
        assert extract_video_id(value) == video_id

    @pytest.mark.parametrize(
        "value",
        ["", "https://vimeo.com/12345", "not a link", "https://example.com/watch?v=x"],
    )
    def test_rejects(self, value: str) -> None:
        assert not is_video_link(value)

    def test_extract_invalid(self) -> None:
        with pytest.raises(ValueError):
            extract_video_id("https://vimeo.com/12345")

    def test_to_watch_url(self) -> None:
        assert to_watch_url("abc") == "https://www.youtube.com/watch?v=abc"
