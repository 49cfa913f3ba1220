from __future__ import annotations

import asyncio
import tempfile
import time
import unittest
from pathlib import Path
from typing import Any

import httpx
import yt_dlp

from social_extract.config_schema import AppConfig
from social_extract.downloader import MediaDownloader
from social_extract.run_log import RunLogger
from social_extract.scratch import ScratchSpace
from social_extract.strategy import CallContext
from social_extract.ytdlp import YtDlpStrategy, metadata_from_info


class _FakeYdl:
    """Stands in for yt_dlp.YoutubeDL: info lookups return canned data, downloads write a file."""

    def __init__(self, owner: "_FakeYdlFactory", opts: dict[str, Any]) -> None:
        self._owner = owner
        self._opts = opts

    def __enter__(self) -> "_FakeYdl":
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def extract_info(self, url: str, download: bool = True) -> Any:
        self._owner.calls.append((url, download, dict(self._opts)))
        if not download:
            if self._owner.info_error is not None:
                raise self._owner.info_error
            return self._owner.info
        if self._owner.download_error is not None:
            raise self._owner.download_error
        deadline = time.monotonic() + self._owner.download_delay
        while time.monotonic() < deadline:
            if self._owner.report_progress:
                for hook in self._opts.get("progress_hooks", ()):
                    hook({"status": "downloading"})
            time.sleep(0.02)
        out = Path(self._opts["outtmpl"].replace("%(ext)s", "mp4"))
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(b"video-bytes")
        self._owner.written.append(out)
        return self._owner.info


class _FakeYdlFactory:
    def __init__(
        self,
        info: dict[str, Any] | None,
        *,
        info_error: Exception | None = None,
        download_error: Exception | None = None,
        download_delay: float = 0.0,
        report_progress: bool = False,
    ) -> None:
        self.info = info
        self.info_error = info_error
        self.download_error = download_error
        self.download_delay = download_delay
        self.report_progress = report_progress
        self.written: list[Path] = []
        self.calls: list[tuple[str, bool, dict[str, Any]]] = []

    def __call__(self, opts: dict[str, Any]) -> _FakeYdl:
        return _FakeYdl(self, opts)


def _image_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=b"jpeg", request=request)


class TestYtDlpStrategy(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.scratch = ScratchSpace.create(root_dir=self._td.name)
        self.http = httpx.AsyncClient(transport=httpx.MockTransport(_image_handler))
        self.ctx = self._context(AppConfig())

    def _context(self, config: AppConfig) -> CallContext:
        return CallContext(
            platform="youtube",
            config=config,
            http=self.http,
            scratch=self.scratch,
            downloader=MediaDownloader(self.http, self.scratch, cfg=config.download),
            logger=RunLogger.disabled(),
        )

    async def asyncTearDown(self) -> None:
        await self.http.aclose()
        self.scratch.cleanup()
        self._td.cleanup()

    async def test_single_video(self) -> None:
        factory = _FakeYdlFactory(
            {"title": "Street food tour", "uploader": "eats", "duration": 61, "description": "Day 1"}
        )
        result = await YtDlpStrategy(self.ctx, ydl_factory=factory).attempt(
            "https://www.youtube.com/watch?v=abc"
        )

        self.assertTrue(result.success, result.error)
        self.assertEqual(result.strategy, "yt-dlp")
        self.assertEqual(result.media_type, "video")
        self.assertEqual(result.caption, "Day 1")
        assert result.file_path is not None and result.metadata is not None
        self.assertEqual(result.file_path.read_bytes(), b"video-bytes")
        self.assertEqual(result.metadata.title, "Street food tour")
        self.assertEqual(result.metadata.duration, 61.0)

        _, download, opts = factory.calls[-1]
        self.assertTrue(download)
        self.assertTrue(opts["noplaylist"])
        self.assertEqual(opts["merge_output_format"], "mp4")

    async def test_info_failure_still_tries_download(self) -> None:
        factory = _FakeYdlFactory(None, info_error=yt_dlp.utils.DownloadError("no info"))
        result = await YtDlpStrategy(self.ctx, ydl_factory=factory).attempt("https://x.com/a/status/1")

        self.assertTrue(result.success)
        self.assertIsNone(result.caption)

    async def test_download_failure_message(self) -> None:
        factory = _FakeYdlFactory({}, download_error=yt_dlp.utils.DownloadError("Private video"))
        result = await YtDlpStrategy(self.ctx, ydl_factory=factory).attempt("https://youtu.be/abc")

        self.assertFalse(result.success)
        self.assertIn("Private video", result.error or "")
        self.assertIn("private, age-restricted, or require login", result.error or "")

    async def test_multi_entry_post(self) -> None:
        factory = _FakeYdlFactory(
            {
                "title": "Gallery",
                "entries": [
                    {"ext": "jpg", "url": "https://cdn.example.com/1.jpg"},
                    {"ext": "mp4", "url": "https://cdn.example.com/2.mp4"},
                ],
            }
        )
        result = await YtDlpStrategy(self.ctx, ydl_factory=factory).attempt(
            "https://www.reddit.com/r/x/comments/abc/post/"
        )

        self.assertTrue(result.success)
        self.assertTrue(result.is_carousel)
        self.assertEqual([(f.index, f.type) for f in result.carousel_files], [(0, "image"), (1, "video")])
        playlist_calls = [opts.get("playlist_items") for _, dl, opts in factory.calls if dl]
        self.assertEqual(playlist_calls, ["2"])

    async def test_timeout_waits_for_worker_before_returning(self) -> None:
        ctx = self._context(
            AppConfig.model_validate({"download": {"ytdlp_download_timeout_seconds": 0.1}})
        )
        factory = _FakeYdlFactory({}, download_delay=0.4)

        result = await YtDlpStrategy(ctx, ydl_factory=factory).attempt("https://youtu.be/abc")

        self.assertFalse(result.success)
        self.assertIn("TimeoutError", result.error or "")
        self.assertEqual(len(factory.written), 1)

        self.scratch.cleanup()
        self.assertEqual(list(Path(self._td.name).iterdir()), [])
        await asyncio.sleep(0.3)
        self.assertEqual(list(Path(self._td.name).iterdir()), [])

    async def test_timeout_stops_worker_through_progress_hook(self) -> None:
        ctx = self._context(
            AppConfig.model_validate({"download": {"ytdlp_download_timeout_seconds": 0.1}})
        )
        factory = _FakeYdlFactory({}, download_delay=5.0, report_progress=True)

        started = time.monotonic()
        result = await YtDlpStrategy(ctx, ydl_factory=factory).attempt("https://youtu.be/abc")

        self.assertFalse(result.success)
        self.assertLess(time.monotonic() - started, 2.0)
        self.assertEqual(factory.written, [])
        self.assertEqual(list(self.scratch.root.glob("*.mp4")), [])


class TestMetadataFromInfo(unittest.TestCase):
    def test_mapping(self) -> None:
        meta = metadata_from_info({"title": "", "channel": "chan", "duration": 0})
        self.assertIsNone(meta.title)
        self.assertEqual(meta.author, "chan")
        self.assertIsNone(meta.duration)
        self.assertEqual(metadata_from_info(None).to_dict(), {})


if __name__ == "__main__":
    unittest.main()
