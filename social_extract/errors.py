from __future__ import annotations

from typing import Sequence


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class ApifyError(RuntimeError):
    """Raised when an Apify Actor run or dataset read fails."""


class MediaToolError(RuntimeError):
    """Raised when an external media binary (ffmpeg, ffprobe, yt-dlp) fails or times out."""


class ResourceCleanupError(RuntimeError):
    """Raised internally when a scratch path cannot be removed. Logged, never propagated."""


class ExtractionError(RuntimeError):
    """Base class for failures of the extraction pipeline."""


class UnsupportedPlatformError(ExtractionError):
    """Raised when a URL matches none of the known platforms."""

    def __init__(self, url: str) -> None:
        super().__init__(
            "Unsupported platform. Supported: Instagram, TikTok, YouTube, Twitter/X, Facebook, Reddit"
        )
        self.url = url


class ExtractionExhaustedError(ExtractionError):
    """Raised when every strategy configured for a platform failed."""

    def __init__(self, attempts: Sequence[tuple[str, str]]) -> None:
        self.attempts = tuple(attempts)
        message = (
            "All extraction methods failed. "
            "Content may be private, age-restricted, or require login."
        )
        if self.attempts:
            details = "; ".join(f"{name}: {error}" for name, error in self.attempts)
            message = f"{message} ({details})"
        super().__init__(message)


class PageDataError(ExtractionError):
    """Raised when a public post page does not contain usable embedded post data."""


class DownloadFailedError(ExtractionError):
    """Raised when a single media item cannot be downloaded."""


class TranscriptionUnavailable(ExtractionError):
    """Raised when audio is missing, oversized, or the speech-to-text call fails."""


class OCRUnavailable(ExtractionError):
    """Raised when the scene-text service fails for an image."""
