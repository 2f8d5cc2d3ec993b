from __future__ import annotations


class FolderEchoError(Exception):
    """Base class for errors raised by slack_folder_echo."""


class ConfigurationError(FolderEchoError):
    pass


class FileSystemError(FolderEchoError):
    pass


class WatcherError(FolderEchoError):
    pass


class SettleTimeout(FolderEchoError):
    def __init__(self, max_wait: float) -> None:
        super().__init__(f"Timeout: file failed to settle after {max_wait:g}s")
        self.max_wait = max_wait


class SendError(FolderEchoError):
    """A message could not be delivered to Slack."""


class TransportError(SendError):
    pass


class ResponseFormatError(SendError):
    pass


class ApplicationRejection(SendError):
    def __init__(self, method: str, error: str) -> None:
        super().__init__(f"Slack {method} failed: {error}")
        self.method = method
        self.error = error


class UploadTooLarge(SendError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"File too large for upload: {size} bytes (limit {limit})")
        self.size = size
        self.limit = limit
