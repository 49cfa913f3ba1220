from __future__ import annotations

import io
import json
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace

import httpx

from social_extract.config import RuntimeSecrets
from social_extract.config_schema import AppConfig
from social_extract.downloader import MediaDownloader
from social_extract.models import DownloadResult, MediaFile, MediaMetadata
from social_extract.orchestrator import UNKNOWN_PLATFORM, ExtractionOrchestrator, default_strategies
from social_extract.run_log import RunLogger
from social_extract.scratch import ScratchSpace
from social_extract.strategy import CallContext

_FRAME_TEXT = "Sunset viewpoint on the old bridge"


class _FakeMedia:
    async def extract_audio(
        self, video: Path, dest: Path, *, timeout: float, sample_rate: int, bitrate: str
    ) -> Path | None:
        return None

    async def probe_duration(self, video: Path, *, timeout: float) -> float | None:
        return 6.0

    async def extract_frame(
        self, video: Path, timestamp: float, dest: Path, *, width: int, timeout: float
    ) -> Path | None:
        dest.write_bytes(b"jpg")
        return dest


class _UnreadablePath(type(Path())):  # type: ignore[misc]
    def read_bytes(self) -> bytes:
        raise PermissionError(13, "Permission denied", str(self))


class _UnreadableAudioMedia(_FakeMedia):
    async def extract_audio(
        self, video: Path, dest: Path, *, timeout: float, sample_rate: int, bitrate: str
    ) -> Path | None:
        dest.write_bytes(b"\x00" * 4000)
        return _UnreadablePath(dest)


class _FakeRecognizer:
    async def recognize(self, image: Path) -> str | None:
        if image.name.startswith("frame_"):
            return _FRAME_TEXT
        return f"Image slide number {image.stem.rsplit('_', 1)[-1]}"


class _FailingStrategy:
    def __init__(self, name: str, error: str) -> None:
        self.name = name
        self._error = error
        self.calls = 0

    async def attempt(self, url: str) -> DownloadResult:
        self.calls += 1
        return DownloadResult.failure(self._error, strategy=self.name)


class _RaisingStrategy:
    name = "broken"

    async def attempt(self, url: str) -> DownloadResult:
        raise RuntimeError("parser exploded")


class _FilesStrategy:
    name = "fake"

    def __init__(self, ctx: CallContext, kinds: list[str]) -> None:
        self._ctx = ctx
        self._kinds = kinds

    async def attempt(self, url: str) -> DownloadResult:
        files = []
        for idx, kind in enumerate(self._kinds):
            suffix = ".mp4" if kind == "video" else ".jpg"
            path = self._ctx.scratch.file_path("item", suffix, index=idx)
            path.write_bytes(b"data")
            files.append(MediaFile(path=path, type=kind, index=idx))  # type: ignore[arg-type]
        return DownloadResult.from_files(
            files,
            caption="Golden hour spots",
            metadata=MediaMetadata(author="walker"),
            strategy=self.name,
        )


class TestExtractionOrchestrator(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)
        self.config = AppConfig.model_validate({"scratch": {"root_dir": str(self.root)}})
        self.http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(404, request=r))
        )
        self.buf = io.StringIO()
        self.factory_calls: list[CallContext] = []

    async def asyncTearDown(self) -> None:
        await self.http.aclose()
        self._td.cleanup()

    def _orchestrator(self, build, media=None) -> ExtractionOrchestrator:  # type: ignore[no-untyped-def]
        def _factory(ctx: CallContext) -> list:
            self.factory_calls.append(ctx)
            return build(ctx)

        return ExtractionOrchestrator(
            self.config,
            RuntimeSecrets(openai_api_key="k"),
            logger=RunLogger.to_stream(self.buf),
            http_client=self.http,
            openai_client=SimpleNamespace(),
            media=media or _FakeMedia(),
            strategy_factory=_factory,
            recognizer_factory=lambda ctx: _FakeRecognizer(),
        )

    def _events(self) -> list[str]:
        return [json.loads(line)["event"] for line in self.buf.getvalue().splitlines()]

    def _leftovers(self) -> list[Path]:
        return list(self.root.iterdir())

    async def test_unsupported_url_does_no_work(self) -> None:
        orch = self._orchestrator(lambda ctx: [])

        result = await orch.extract("https://vimeo.com/12345")

        self.assertFalse(result.success)
        self.assertEqual(result.platform, UNKNOWN_PLATFORM)
        self.assertIn("Unsupported platform", result.error or "")
        self.assertEqual(self.factory_calls, [])
        self.assertEqual(self._leftovers(), [])

    async def test_all_strategies_failing(self) -> None:
        first = _FailingStrategy("apify", "Apify returned no items")
        second = _FailingStrategy("page_scrape", "Content is age-restricted")
        orch = self._orchestrator(lambda ctx: [first, second])

        result = await orch.extract("https://www.tiktok.com/@a/video/123")

        self.assertFalse(result.success)
        self.assertEqual(result.platform, "tiktok")
        self.assertIn("All extraction methods failed", result.error or "")
        self.assertIn("apify: Apify returned no items", result.error or "")
        self.assertIn("page_scrape: Content is age-restricted", result.error or "")
        self.assertEqual((first.calls, second.calls), (1, 1))
        self.assertEqual(self._leftovers(), [])
        self.assertIn("extraction_exhausted", self._events())

    async def test_falls_through_to_next_strategy(self) -> None:
        orch = self._orchestrator(lambda ctx: [_RaisingStrategy(), _FilesStrategy(ctx, ["image"])])

        result = await orch.extract("https://www.instagram.com/p/abc123/")

        self.assertTrue(result.success, result.error)
        self.assertEqual(result.caption, "Golden hour spots")
        self.assertEqual(result.ocr_text, "Image slide number 0")
        self.assertIsNone(result.carousel_items)
        self.assertEqual(self._leftovers(), [])

        events = self._events()
        self.assertIn("strategy_error", events)
        self.assertIn("strategy_succeeded", events)
        self.assertLess(events.index("strategy_error"), events.index("strategy_succeeded"))

    async def test_single_video(self) -> None:
        orch = self._orchestrator(lambda ctx: [_FilesStrategy(ctx, ["video"])])

        result = await orch.extract("https://youtu.be/abc")

        self.assertTrue(result.success)
        self.assertIsNone(result.audio_transcript)
        self.assertEqual(result.ocr_text, _FRAME_TEXT)

    async def test_single_video_survives_unreadable_audio(self) -> None:
        orch = self._orchestrator(
            lambda ctx: [_FilesStrategy(ctx, ["video"])], media=_UnreadableAudioMedia()
        )

        result = await orch.extract("https://youtu.be/abc")

        self.assertTrue(result.success, result.error)
        self.assertEqual(result.caption, "Golden hour spots")
        self.assertEqual(result.ocr_text, _FRAME_TEXT)
        self.assertIsNone(result.audio_transcript)
        self.assertIn("transcription_unavailable", self._events())
        self.assertEqual(self._leftovers(), [])

    async def test_carousel_items_keep_source_order(self) -> None:
        orch = self._orchestrator(lambda ctx: [_FilesStrategy(ctx, ["image", "video", "image"])])

        result = await orch.extract("https://www.instagram.com/p/abc123/")

        self.assertTrue(result.success)
        assert result.carousel_items is not None
        self.assertEqual(
            [(i.index, i.type, i.ocr_text) for i in result.carousel_items],
            [
                (0, "image", "Image slide number 0"),
                (1, "video", _FRAME_TEXT),
                (2, "image", "Image slide number 2"),
            ],
        )
        assert result.metadata is not None
        self.assertEqual(result.metadata.media_count, 3)
        self.assertIsNone(result.ocr_text)
        self.assertEqual(self._leftovers(), [])

    async def test_processing_crash_becomes_failure(self) -> None:
        def _boom(ctx: CallContext) -> _FakeRecognizer:
            raise RuntimeError("recognizer misconfigured")

        orch = ExtractionOrchestrator(
            self.config,
            RuntimeSecrets(openai_api_key="k"),
            http_client=self.http,
            openai_client=SimpleNamespace(),
            media=_FakeMedia(),
            strategy_factory=lambda ctx: [_FilesStrategy(ctx, ["image"])],
            recognizer_factory=_boom,
        )

        result = await orch.extract("https://www.instagram.com/p/abc123/")

        self.assertFalse(result.success)
        self.assertEqual(result.error, "recognizer misconfigured")
        self.assertEqual(self._leftovers(), [])


class TestDefaultStrategies(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.scratch = ScratchSpace.create(root_dir=self._td.name)
        self.http = httpx.AsyncClient()

    async def asyncTearDown(self) -> None:
        await self.http.aclose()
        self.scratch.cleanup()
        self._td.cleanup()

    def _names(self, platform: str, *, scraper: object = None, **toggles: bool) -> list[str]:
        config = AppConfig.model_validate({"strategies": toggles})
        ctx = CallContext(
            platform=platform,
            config=config,
            http=self.http,
            scratch=self.scratch,
            downloader=MediaDownloader(self.http, self.scratch, cfg=config.download),
            logger=RunLogger.disabled(),
        )
        return [s.name for s in default_strategies(ctx, apify_scraper=scraper)]  # type: ignore[arg-type]

    async def test_primary_platform_order(self) -> None:
        scraper = object()
        self.assertEqual(self._names("instagram", scraper=scraper), ["apify", "page_scrape", "yt-dlp"])
        self.assertEqual(self._names("tiktok", scraper=scraper), ["apify", "page_scrape", "yt-dlp"])

    async def test_provider_skipped_without_credentials(self) -> None:
        self.assertEqual(self._names("instagram"), ["page_scrape", "yt-dlp"])

    async def test_other_platforms_use_ytdlp(self) -> None:
        for platform in ("youtube", "twitter", "facebook", "reddit"):
            self.assertEqual(self._names(platform, scraper=object()), ["yt-dlp"])

    async def test_toggles(self) -> None:
        self.assertEqual(
            self._names(
                "tiktok", scraper=object(), page_scrape_enabled=False, ytdlp_enabled=False
            ),
            ["apify"],
        )
        self.assertEqual(self._names("youtube", ytdlp_enabled=False), [])


if __name__ == "__main__":
    unittest.main()
