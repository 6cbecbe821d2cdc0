"""設定管理"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """アプリケーション設定"""

    # Clip
    # 最終フレームの欠落を防ぐため -t に加算する秒数
    DURATION_PAD_SEC: float = 1.0
    # ストリームを開始位置から要求する（begin パラメータ）。先頭部分はダウンロードしない
    # 無効にするとストリームは先頭から読み、ffmpeg 側で開始位置までシークする
    COARSE_SEEK: bool = True
    # クリップ長の上限（秒）。未設定なら無制限
    MAX_CLIP_DURATION_SEC: float | None = None

    # Streaming
    CHUNK_SIZE: int = 64 * 1024
    STREAM_CONNECT_TIMEOUT: float = 10.0

    # Production mode (プロキシ経由でストリームを取得)
    PRODUCTION: bool = False
    PROXY_URL: str | None = None

    # Paths
    TEMP_DIR: str = "temp"
    FFMPEG_PATH: str = "ffmpeg"
    # 出力検証用。空文字ならファイルサイズのみ確認
    FFPROBE_PATH: str = "ffprobe"

    # Logging
    LOG_LEVEL: str = "INFO"

    def proxy_url(self) -> str | None:
        """本番モードの場合のみプロキシURLを返す"""
        if self.PRODUCTION and self.PROXY_URL:
            return self.PROXY_URL
        return None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache
def get_settings() -> Settings:
    """シングルトンで設定を取得"""
    return Settings()
