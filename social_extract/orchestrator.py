from __future__ import annotations

import uuid
from typing import Any, Callable

import httpx
from openai import AsyncOpenAI

from .apify_client import ApifyPostScraper
from .apify_strategy import ApifyStrategy
from .config import RuntimeSecrets
from .config_schema import AppConfig
from .downloader import MediaDownloader
from .errors import ExtractionExhaustedError, UnsupportedPlatformError
from .fanout import bounded_gather
from .frames import FrameSampler
from .http_client import new_async_client
from .media_tool import FFmpegMediaUtility, MediaUtility
from .models import (
    CarouselItem,
    DownloadResult,
    ExtractionRequest,
    ExtractionResult,
    MediaFile,
    ProcessedMedia,
)
from .ocr import OnScreenTextAggregator, OpenAIVisionOCR, SceneTextRecognizer
from .page_scrape import InstagramPageStrategy, TikTokPageStrategy
from .platforms import INSTAGRAM, PRIMARY_PLATFORMS, TIKTOK, detect_platform
from .processing import MediaProcessor
from .run_log import RunLogger
from .scratch import ScratchSpace
from .strategy import CallContext, ExtractionStrategy
from .transcription import AudioTranscriber
from .ytdlp import YtDlpStrategy

UNKNOWN_PLATFORM = "unknown"

StrategyFactory = Callable[[CallContext], list[ExtractionStrategy]]
RecognizerFactory = Callable[[CallContext], SceneTextRecognizer]


def default_strategies(
    ctx: CallContext, *, apify_scraper: ApifyPostScraper | None = None
) -> list[ExtractionStrategy]:
    """
    Fallback order for a platform.

    Instagram and TikTok try the credentialed provider (only when a scraper is
    available), then their public pages, then yt-dlp; every other platform goes
    straight to yt-dlp.
    """
    toggles = ctx.config.strategies
    out: list[ExtractionStrategy] = []

    if ctx.platform in PRIMARY_PLATFORMS:
        if toggles.apify_enabled and apify_scraper is not None:
            out.append(ApifyStrategy(ctx, apify_scraper))
        if toggles.page_scrape_enabled:
            if ctx.platform == INSTAGRAM:
                out.append(InstagramPageStrategy(ctx))
            elif ctx.platform == TIKTOK:
                out.append(TikTokPageStrategy(ctx))

    if toggles.ytdlp_enabled:
        out.append(YtDlpStrategy(ctx))
    return out


class ExtractionOrchestrator:
    """
    Entry point of the extraction pipeline: URL in, ExtractionResult out.

    Credentials, toggles and service clients belong to the instance, so several
    differently configured orchestrators can coexist in one process. Every call gets
    its own scratch namespace and logger context, and never raises for an expected
    failure.
    """

    def __init__(
        self,
        config: AppConfig,
        secrets: RuntimeSecrets,
        *,
        logger: RunLogger | None = None,
        http_client: httpx.AsyncClient | None = None,
        openai_client: Any | None = None,
        apify_scraper: ApifyPostScraper | None = None,
        media: MediaUtility | None = None,
        strategy_factory: StrategyFactory | None = None,
        recognizer_factory: RecognizerFactory | None = None,
    ) -> None:
        self._cfg = config
        self._secrets = secrets
        self._log = logger or RunLogger.disabled()
        self._http = http_client
        self._openai = openai_client or AsyncOpenAI(
            api_key=secrets.openai_api_key,
            max_retries=0,
            timeout=config.openai.request_timeout_seconds,
        )
        if apify_scraper is None and secrets.has_apify:
            apify_scraper = ApifyPostScraper(secrets.apify_token or "")
        self._apify = apify_scraper
        self._media: MediaUtility = media or FFmpegMediaUtility()
        self._strategy_factory = strategy_factory
        self._recognizer_factory = recognizer_factory

    @property
    def config(self) -> AppConfig:
        return self._cfg

    def strategies_for(self, ctx: CallContext) -> list[ExtractionStrategy]:
        if self._strategy_factory is not None:
            return list(self._strategy_factory(ctx))
        return default_strategies(ctx, apify_scraper=self._apify)

    async def extract(self, url: str) -> ExtractionResult:
        call_id = uuid.uuid4().hex[:12]
        platform = detect_platform(url)
        if platform is None:
            err = UnsupportedPlatformError(url)
            self._log.info("unsupported_platform", call_id=call_id, url=url)
            return ExtractionResult.failure(platform=UNKNOWN_PLATFORM, url=url, error=str(err))

        request = ExtractionRequest(url=url, platform=platform)
        log = self._log.bind(call_id=call_id, platform=platform, url=url)
        log.info("extraction_started")

        scratch = ScratchSpace.create(
            root_dir=self._cfg.scratch.root_dir,
            prefix=self._cfg.scratch.prefix,
            logger=log,
        )
        owns_http = self._http is None
        http = self._http or new_async_client(timeout=self._cfg.download.media_timeout_seconds)

        try:
            ctx = CallContext(
                platform=platform,
                config=self._cfg,
                http=http,
                scratch=scratch,
                downloader=MediaDownloader(
                    http, scratch, cfg=self._cfg.download, platform=platform, logger=log
                ),
                logger=log,
            )
            download = await self._acquire(request, ctx)
            result = await self._process(request, download, ctx)
            log.info(
                "extraction_succeeded",
                strategy=download.strategy,
                carousel=download.is_carousel,
                has_transcript=bool(result.audio_transcript),
                has_ocr=bool(result.ocr_text),
            )
            return result
        except ExtractionExhaustedError as e:
            log.warning("extraction_exhausted", attempts=[list(a) for a in e.attempts])
            return ExtractionResult.failure(platform=platform, url=url, error=str(e))
        except Exception as e:
            log.exception("extraction_failed", exc=e)
            return ExtractionResult.failure(
                platform=platform, url=url, error=str(e) or "Failed to extract content"
            )
        finally:
            if owns_http:
                await http.aclose()
            scratch.cleanup()

    async def _acquire(self, request: ExtractionRequest, ctx: CallContext) -> DownloadResult:
        log = ctx.logger
        attempts: list[tuple[str, str]] = []

        for strategy in self.strategies_for(ctx):
            log.info("strategy_attempt", strategy=strategy.name)
            try:
                result = await strategy.attempt(request.url)
            except Exception as e:
                log.exception("strategy_error", exc=e, strategy=strategy.name)
                attempts.append((strategy.name, str(e) or type(e).__name__))
                continue

            if result.success:
                log.info("strategy_succeeded", strategy=strategy.name, files=len(result.files))
                return result

            attempts.append((strategy.name, result.error or "unknown error"))
            log.info("strategy_failed", strategy=strategy.name, error=result.error)

        raise ExtractionExhaustedError(attempts)

    def _build_processor(self, ctx: CallContext) -> MediaProcessor:
        cfg = self._cfg
        recognizer = (
            self._recognizer_factory(ctx)
            if self._recognizer_factory is not None
            else OpenAIVisionOCR(self._openai, openai_cfg=cfg.openai, logger=ctx.logger)
        )
        transcriber = AudioTranscriber(
            self._openai,
            self._media,
            ctx.scratch,
            openai_cfg=cfg.openai,
            audio_cfg=cfg.audio,
            classifier_cfg=cfg.classifier,
            logger=ctx.logger,
        )
        on_screen = OnScreenTextAggregator(
            recognizer,
            FrameSampler(self._media, cfg=cfg.frames, logger=ctx.logger),
            ctx.scratch,
            cfg=cfg.ocr,
            logger=ctx.logger,
        )
        return MediaProcessor(transcriber, on_screen, ctx.scratch, logger=ctx.logger)

    async def _process(
        self, request: ExtractionRequest, download: DownloadResult, ctx: CallContext
    ) -> ExtractionResult:
        processor = self._build_processor(ctx)
        base: dict[str, Any] = {
            "platform": request.platform,
            "url": request.url,
            "success": True,
            "caption": download.caption,
            "metadata": download.metadata,
        }

        if download.is_carousel:
            files = list(download.carousel_files)

            async def _one(media: MediaFile) -> ProcessedMedia:
                return await processor.process(media, index=media.index)

            def _on_error(_: int, media: MediaFile, exc: BaseException) -> None:
                ctx.logger.warning(
                    "carousel_item_processing_failed", index=media.index, error=str(exc)
                )

            processed = await bounded_gather(
                files,
                _one,
                limit=self._cfg.processing.max_concurrent_items,
                on_error=_on_error,
            )
            items = tuple(
                CarouselItem(
                    index=media.index,
                    type=media.type,
                    ocr_text=out.ocr_text if out is not None else None,
                    transcript=out.transcript if out is not None else None,
                )
                for media, out in sorted(zip(files, processed), key=lambda pair: pair[0].index)
            )
            return ExtractionResult(carousel_items=items, **base)

        files = download.files
        if not files:
            return ExtractionResult(**base)

        out = await processor.process(files[0])
        return ExtractionResult(audio_transcript=out.transcript, ocr_text=out.ocr_text, **base)
