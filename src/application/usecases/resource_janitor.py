"""ジョブ単位のリソース解放"""

import contextlib
from dataclasses import dataclass
from pathlib import Path

from src.application.interfaces.clip_transcoder import TranscodeTask
from src.application.interfaces.delivery import DeliverySession
from src.application.interfaces.stream_source import StreamHandle
from src.domain.exceptions import CleanupError
from src.infrastructure.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class JobResources:
    """
    ジョブが確保したリソース一式

    各ステージが確保に成功した時点でフィールドを埋める。
    解放はResourceJanitorに所有権ごと渡して一度だけ行う。
    """

    transcode: TranscodeTask | None = None
    stream: StreamHandle | None = None
    delivery: DeliverySession | None = None
    temp_path: Path | None = None
    released: bool = False


class ResourceJanitor:
    """
    プロセス・ストリーム・読み取りストリーム・一時ファイルを解放する

    解放順序:
    1. 外部プロセスの強制終了（実行中のみ）
    2. 入力ストリームの破棄
    3. 配信用読み取りストリームのクローズ
    4. 一時ファイルの削除（存在しない場合は無視）

    どの段階の失敗もログに残すだけで、呼び出し元には伝播しない。
    """

    async def cleanup(self, resources: JobResources) -> None:
        """
        リソースを解放する（冪等、2回目以降は何もしない）

        Args:
            resources: 解放対象。未確保のフィールドはNoneのまま渡してよい
        """
        if resources.released:
            return
        resources.released = True

        if resources.transcode is not None:
            with self._logged("transcode"):
                await resources.transcode.kill()

        if resources.stream is not None:
            with self._logged("stream"):
                await resources.stream.aclose()

        if resources.delivery is not None:
            with self._logged("delivery"):
                resources.delivery.close()

        if resources.temp_path is not None:
            with self._logged("temp_file"):
                self._remove_temp(resources.temp_path)

    @staticmethod
    def _remove_temp(path: Path) -> None:
        try:
            path.unlink()
            logger.debug(f"[Janitor] 一時ファイル削除: {path.name}")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CleanupError(f"Failed to delete {path}: {e}") from e

    @staticmethod
    @contextlib.contextmanager
    def _logged(resource: str):
        try:
            yield
        except Exception as e:
            logger.warning(f"[Janitor] {resource} の解放に失敗: {e}")
