"""一時ファイル置き場"""

import time
import uuid
from pathlib import Path

from src.infrastructure.logging_config import get_logger

logger = get_logger(__name__)

# デフォルトの一時ディレクトリ
DEFAULT_TEMP_DIR = Path("temp")


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


class TempStorage:
    """
    プロセス全体で共有する一時ディレクトリ

    ディレクトリは起動時に一度だけ作成し、削除しない。
    個々のファイルはジョブ専用で、ジョブ終了時に削除される。
    """

    def __init__(self, root: Path | str = DEFAULT_TEMP_DIR):
        self.root = Path(root)

    def ensure_root(self) -> Path:
        """一時ディレクトリを作成（既に存在すれば何もしない）"""
        self.root.mkdir(parents=True, exist_ok=True)
        logger.debug(f"[Temp] ルート: {self.root.resolve()}")
        return self.root

    def new_clip_path(self) -> Path:
        """
        ジョブ専用の一時ファイルパスを払い出す

        同一ミリ秒に複数ジョブが来ても衝突しないよう乱数サフィックスを付ける
        """
        return self.root / f"temp_{_timestamp_ms()}_{uuid.uuid4().hex[:8]}.mp4"


def clip_file_name(start_sec: float) -> str:
    """
    クライアントに提示するファイル名

    Example:
        clip_file_name(30) → "Clip-30_1700000000000.mp4"
        clip_file_name(12.5) → "Clip-12.5_1700000000000.mp4"
    """
    return f"Clip-{format_seconds(start_sec)}_{_timestamp_ms()}.mp4"


def format_seconds(seconds: float) -> str:
    """秒数を指数表記なしの文字列にする（整数なら小数点なし）"""
    value = float(seconds)
    if value.is_integer():
        return str(int(value))
    return f"{value:f}".rstrip("0").rstrip(".")
