"""ドメイン固有の例外定義"""


class ClipDownloaderError(Exception):
    """基底例外クラス"""

    pass


class ValidationError(ClipDownloaderError):
    """リクエストの入力値が不正"""

    pass


class NotFoundError(ClipDownloaderError):
    """動画が見つからない"""

    pass


class UnsupportedFormatError(ClipDownloaderError):
    """映像と音声を両方含むフォーマットがない"""

    pass


class FormatResolveError(ClipDownloaderError):
    """フォーマット情報の取得に失敗（ネットワーク/プロキシ等のサーバー側エラー）"""

    pass


class StreamOpenError(ClipDownloaderError):
    """ストリームのオープンに失敗（ネットワーク/認可エラー）"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_client_fault(self) -> bool:
        """上流が動画の提供を拒否した場合はクライアント起因として扱う"""
        return self.status_code in (403, 404, 410)


class TranscodeError(ClipDownloaderError):
    """ffmpegプロセスの失敗・異常終了"""

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class DeliveryAbortedError(ClipDownloaderError):
    """クライアントが転送中に切断した"""

    pass


class CleanupError(ClipDownloaderError):
    """リソース解放時のエラー（ログのみ、呼び出し元には伝播しない）"""

    pass
