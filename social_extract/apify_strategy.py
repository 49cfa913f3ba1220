from __future__ import annotations

from .apify_client import ApifyPostScraper
from .errors import ApifyError
from .models import DownloadResult
from .normalize import provider_post_from_instagram_item, provider_post_from_tiktok_item
from .platforms import INSTAGRAM, TIKTOK
from .strategy import CallContext


class ApifyStrategy:
    """Credentialed provider path: run the platform's Apify Actor and download what it returns."""

    name = "apify"

    def __init__(self, ctx: CallContext, scraper: ApifyPostScraper) -> None:
        self._ctx = ctx
        self._scraper = scraper

    async def attempt(self, url: str) -> DownloadResult:
        apify = self._ctx.config.apify
        platform = self._ctx.platform

        try:
            if platform == INSTAGRAM:
                items = await self._scraper.scrape_instagram_post(url, apify=apify)
                mapper = provider_post_from_instagram_item
            elif platform == TIKTOK:
                items = await self._scraper.scrape_tiktok_post(url, apify=apify)
                mapper = provider_post_from_tiktok_item
            else:
                return DownloadResult.failure(
                    f"Apify is not configured for {platform}", strategy=self.name
                )
        except ApifyError as e:
            return DownloadResult.failure(str(e), strategy=self.name)

        if not items:
            return DownloadResult.failure("Apify returned no items", strategy=self.name)

        post = mapper(items[0])
        if post is None:
            err = items[0].get("error") if isinstance(items[0], dict) else None
            return DownloadResult.failure(
                f"Apify item could not be parsed{': ' + str(err) if err else ''}",
                strategy=self.name,
            )

        self._ctx.logger.debug("apify_post_resolved", media_count=len(post.media))
        return await self._ctx.downloader.fetch_post(post, strategy=self.name)
