from __future__ import annotations

from pathlib import Path
from typing import Sequence
from urllib.parse import urlparse

import httpx

from .config_schema import MAX_CAROUSEL_ITEMS, DownloadConfig
from .errors import DownloadFailedError
from .fanout import bounded_gather
from .http_client import media_headers, stream_to_file
from .models import DownloadResult, MediaFile, ProviderPost, RemoteMedia
from .retry import RetryConfig, RetryEvent, call_with_retries
from .retry_policy import is_retryable_http_exception
from .run_log import RunLogger
from .scratch import ScratchSpace

_DEFAULT_SUFFIX = {"video": ".mp4", "image": ".jpg"}
_KNOWN_SUFFIXES = {".mp4", ".mov", ".webm", ".m4v", ".jpg", ".jpeg", ".png", ".webp", ".heic"}


def _suffix_for(media: RemoteMedia) -> str:
    path = urlparse(media.url).path
    suffix = Path(path).suffix.casefold()
    if suffix in _KNOWN_SUFFIXES:
        return suffix
    return _DEFAULT_SUFFIX[media.type]


class MediaDownloader:
    """
    Fetches resolved media URLs into the call's scratch space.

    One instance serves one extraction call; it shares that call's HTTP client and
    scratch namespace.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        scratch: ScratchSpace,
        *,
        cfg: DownloadConfig,
        platform: str | None = None,
        logger: RunLogger | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self._client = client
        self._scratch = scratch
        self._cfg = cfg
        self._platform = platform
        self._log = logger or RunLogger.disabled()
        self._retry = retry or RetryConfig(max_attempts=cfg.retry_attempts)

    def _on_retry(self, event: RetryEvent) -> None:
        self._log.warning(
            "download_retry",
            operation=event.operation,
            attempt=event.failure_attempt,
            delay_seconds=round(event.delay_seconds, 3),
            reason=event.reason,
            error=event.error_message,
        )

    async def download(self, media: RemoteMedia, *, stem: str = "media", index: int = 0) -> MediaFile:
        """Download one media URL. Raises DownloadFailedError; no partial file is left behind."""
        url = (media.url or "").strip()
        if not url:
            raise DownloadFailedError("media URL is empty")

        dest = self._scratch.file_path(stem, _suffix_for(media), index=index)
        headers = media_headers(self._platform)

        async def _do_fetch() -> int:
            return await stream_to_file(
                self._client,
                url,
                dest,
                timeout=self._cfg.media_timeout_seconds,
                headers=headers,
            )

        try:
            size = await call_with_retries(
                _do_fetch,
                cfg=self._retry,
                is_retryable=is_retryable_http_exception,
                operation=f"download:{media.type}:{index}",
                on_retry=self._on_retry,
            )
        except httpx.HTTPStatusError as e:
            self._scratch.discard(dest)
            raise DownloadFailedError(
                f"Failed to download {media.type}: HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, OSError) as e:
            self._scratch.discard(dest)
            raise DownloadFailedError(f"Failed to download {media.type}: {e}") from e

        if size <= 0:
            self._scratch.discard(dest)
            raise DownloadFailedError(f"Downloaded {media.type} is empty")

        self._log.debug("media_downloaded", index=index, type=media.type, bytes=size)
        return MediaFile(path=dest, type=media.type, index=index)

    async def download_all(
        self, media: Sequence[RemoteMedia], *, stem: str = "item"
    ) -> list[MediaFile]:
        """
        Download up to the carousel cap concurrently.

        Items that fail are dropped; survivors keep their source index and order.
        """
        cap = min(self._cfg.max_carousel_items, MAX_CAROUSEL_ITEMS)
        items = list(enumerate(media[:cap]))
        if len(media) > cap:
            self._log.info("carousel_truncated", total=len(media), kept=cap)

        async def _one(pair: tuple[int, RemoteMedia]) -> MediaFile:
            idx, item = pair
            return await self.download(item, stem=stem, index=idx)

        def _on_error(_: int, pair: tuple[int, RemoteMedia], exc: BaseException) -> None:
            self._log.warning(
                "carousel_item_download_failed",
                index=pair[0],
                type=pair[1].type,
                error=str(exc),
            )

        results = await bounded_gather(
            items, _one, limit=self._cfg.max_concurrency, on_error=_on_error
        )
        return [f for f in results if f is not None]

    async def fetch_post(self, post: ProviderPost, *, strategy: str) -> DownloadResult:
        if not post.media:
            return DownloadResult.failure("No media URLs found in post data", strategy=strategy)

        if len(post.media) == 1:
            try:
                files = [await self.download(post.media[0], stem=strategy)]
            except DownloadFailedError as e:
                return DownloadResult.failure(str(e), strategy=strategy)
        else:
            files = await self.download_all(post.media, stem=strategy)

        return DownloadResult.from_files(
            files,
            caption=post.caption,
            metadata=post.metadata(),
            strategy=strategy,
            error="Failed to download any media from post",
        )
