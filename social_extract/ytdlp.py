from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Any, Callable, Mapping

import yt_dlp

from .fanout import bounded_gather
from .models import DownloadResult, MediaFile, MediaMetadata, MediaType, RemoteMedia
from .strategy import CallContext

_IMAGE_EXTS = {"jpg", "jpeg", "png", "webp", "gif", "heic"}
_MEDIA_SUFFIXES = {".mp4", ".webm", ".mkv", ".mov", ".m4v", ".jpg", ".jpeg", ".png", ".webp"}

YdlFactory = Callable[[dict[str, Any]], Any]


def _media_type_for_ext(ext: str | None) -> MediaType:
    return "image" if (ext or "").lstrip(".").casefold() in _IMAGE_EXTS else "video"


def metadata_from_info(info: Mapping[str, Any] | None) -> MediaMetadata:
    if not info:
        return MediaMetadata()
    duration = info.get("duration")
    return MediaMetadata(
        title=info.get("title") or None,
        author=info.get("uploader") or info.get("channel") or info.get("uploader_id") or None,
        duration=float(duration) if isinstance(duration, (int, float)) and duration > 0 else None,
    )


class YtDlpStrategy:
    """
    Generic downloader backed by yt-dlp.

    Metadata is read first without downloading; multi-entry posts are fetched item by
    item, everything else as one merged MP4. yt-dlp is blocking, so each call runs in a
    worker thread under a timeout.
    """

    name = "yt-dlp"

    def __init__(self, ctx: CallContext, *, ydl_factory: YdlFactory | None = None) -> None:
        self._ctx = ctx
        self._cfg = ctx.config.download
        self._ydl_factory: YdlFactory = ydl_factory or yt_dlp.YoutubeDL

    def _base_opts(self) -> dict[str, Any]:
        return {
            "quiet": True,
            "no_warnings": True,
            "noprogress": True,
            "socket_timeout": self._cfg.metadata_timeout_seconds,
            "http_headers": {"User-Agent": "Mozilla/5.0"},
        }

    def _run(self, url: str, opts: dict[str, Any], *, download: bool) -> Any:
        with self._ydl_factory(opts) as ydl:
            return ydl.extract_info(url, download=download)

    async def _extract(
        self, url: str, opts: dict[str, Any], *, download: bool, timeout: float
    ) -> Any:
        """
        Run one yt-dlp call in a worker thread.

        On timeout or cancellation the worker is told to stop and awaited before the error
        propagates, so nothing writes into scratch after the call has given up on it.
        """
        stop = threading.Event()

        def _stop_hook(_: Mapping[str, Any]) -> None:
            if stop.is_set():
                raise yt_dlp.utils.DownloadCancelled("stopped by caller")

        opts = dict(opts)
        opts["progress_hooks"] = [*opts.get("progress_hooks", ()), _stop_hook]
        opts["postprocessor_hooks"] = [*opts.get("postprocessor_hooks", ()), _stop_hook]

        worker = asyncio.ensure_future(asyncio.to_thread(self._run, url, opts, download=download))
        try:
            return await asyncio.wait_for(asyncio.shield(worker), timeout=timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            stop.set()
            await asyncio.wait({worker})
            late = None if worker.cancelled() else worker.exception()
            self._ctx.logger.info(
                "ytdlp_worker_stopped",
                download=download,
                error=(str(late) or type(late).__name__) if late is not None else None,
            )
            raise

    async def fetch_info(self, url: str) -> dict[str, Any] | None:
        try:
            info = await self._extract(
                url,
                self._base_opts(),
                download=False,
                timeout=self._cfg.ytdlp_info_timeout_seconds,
            )
        except (yt_dlp.utils.DownloadError, yt_dlp.utils.ExtractorError, asyncio.TimeoutError) as e:
            self._ctx.logger.info("ytdlp_info_failed", error=str(e) or type(e).__name__)
            return None
        return info if isinstance(info, dict) else None

    async def attempt(self, url: str) -> DownloadResult:
        info = await self.fetch_info(url)
        caption = (info or {}).get("description") or None
        metadata = metadata_from_info(info)

        entries = [e for e in ((info or {}).get("entries") or []) if isinstance(e, dict)]
        if len(entries) > 1:
            files = await self._download_entries(url, entries)
            if files:
                return DownloadResult.from_files(
                    files, caption=caption, metadata=metadata, strategy=self.name
                )
            self._ctx.logger.info("ytdlp_carousel_empty", entries=len(entries))

        try:
            media = await self._download_single(url)
        except (yt_dlp.utils.DownloadError, yt_dlp.utils.ExtractorError, asyncio.TimeoutError) as e:
            reason = str(e) or type(e).__name__
            return DownloadResult.failure(
                f"Failed to download: {reason}. "
                "The content might be private, age-restricted, or require login.",
                strategy=self.name,
            )

        if media is None:
            return DownloadResult.failure("Download completed but file not found", strategy=self.name)

        return DownloadResult.from_files(
            [media], caption=caption, metadata=metadata, strategy=self.name
        )

    def _template(self, stem: str, *, index: int | None = None) -> Path:
        return self._ctx.scratch.file_path(stem, ".%(ext)s", index=index)

    def _find_output(self, template: Path) -> Path | None:
        prefix = template.name.split(".%(ext)s", 1)[0]
        matches = sorted(
            p
            for p in template.parent.glob(f"{prefix}.*")
            if p.suffix.casefold() in _MEDIA_SUFFIXES and p.stat().st_size > 0
        )
        return matches[0] if matches else None

    async def _download_single(
        self, url: str, *, playlist_item: int | None = None, index: int = 0
    ) -> MediaFile | None:
        template = self._template("ytdlp", index=index if playlist_item else None)
        opts = self._base_opts()
        opts.update(
            {
                "format": self._cfg.ytdlp_format,
                "merge_output_format": "mp4",
                "outtmpl": str(template),
                "socket_timeout": self._cfg.media_timeout_seconds,
            }
        )
        if playlist_item is not None:
            opts["playlist_items"] = str(playlist_item)
        else:
            opts["noplaylist"] = True

        await self._extract(
            url, opts, download=True, timeout=self._cfg.ytdlp_download_timeout_seconds
        )

        path = self._find_output(template)
        if path is None:
            return None
        return MediaFile(path=path, type=_media_type_for_ext(path.suffix), index=index)

    async def _download_entries(self, url: str, entries: list[dict[str, Any]]) -> list[MediaFile]:
        cap = self._cfg.max_carousel_items
        if len(entries) > cap:
            self._ctx.logger.info("carousel_truncated", total=len(entries), kept=cap)

        async def _one(pair: tuple[int, dict[str, Any]]) -> MediaFile | None:
            idx, entry = pair
            entry_url = entry.get("url")
            if _media_type_for_ext(entry.get("ext")) == "image" and isinstance(entry_url, str):
                return await self._ctx.downloader.download(
                    RemoteMedia(url=entry_url, type="image"), stem="ytdlp", index=idx
                )
            return await self._download_single(url, playlist_item=idx + 1, index=idx)

        def _on_error(_: int, pair: tuple[int, dict[str, Any]], exc: BaseException) -> None:
            self._ctx.logger.warning(
                "carousel_item_download_failed", index=pair[0], error=str(exc) or type(exc).__name__
            )

        results = await bounded_gather(
            list(enumerate(entries[:cap])),
            _one,
            limit=self._cfg.max_concurrency,
            on_error=_on_error,
        )
        return [f for f in results if f is not None]
