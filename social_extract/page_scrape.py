from __future__ import annotations

import json
import re
import uuid
from typing import Any, Mapping

import httpx

from .errors import PageDataError
from .http_client import fetch_text, page_headers
from .models import DownloadResult, ProviderPost, RemoteMedia
from .platforms import INSTAGRAM, TIKTOK, instagram_shortcode, tiktok_video_id
from .retry import RetryConfig, call_with_retries
from .retry_policy import is_retryable_http_exception
from .strategy import CallContext

IG_APP_ID = "936619743392459"
IG_POST_QUERY_DOC_ID = "8845758582119845"
IG_POST_QUERY_NAME = "PolarisPostActionLoadPostQueryQuery"
IG_GRAPHQL_URL = "https://www.instagram.com/graphql/query"

_EMBED_INIT_RE = re.compile(r'"init",\[\],\[(.*?)\]\],', re.S)
_SHARED_DATA_RE = re.compile(r"<script[^>]*>window\._sharedData\s*=\s*(\{.*?\});</script>", re.S)
_ADDITIONAL_DATA_RE = re.compile(
    r"<script[^>]*>window\.__additionalDataLoaded\s*\([^,]+,\s*(\{.*?\})\s*\);</script>", re.S
)
_LSD_RE = re.compile(r'"LSD",\[\],\{"token":"([^"]+)"\}')
_CSRF_RE = re.compile(r'"csrf_token":"([^"]+)"')
_TIKTOK_DATA_RE = re.compile(
    r'<script id="__UNIVERSAL_DATA_FOR_REHYDRATION__"[^>]*>([^<]+)</script>', re.S
)


def _get(obj: Any, *path: Any) -> Any:
    cur = obj
    for key in path:
        if isinstance(key, int):
            if not isinstance(cur, list) or len(cur) <= key:
                return None
            cur = cur[key]
        else:
            if not isinstance(cur, Mapping):
                return None
            cur = cur.get(key)
    return cur


def _str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _count(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value) if value >= 0 else None


def _load_json(raw: str, *, what: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as e:
        raise PageDataError(f"Could not parse {what} JSON") from e


def _instagram_node_media(node: Mapping[str, Any]) -> RemoteMedia | None:
    is_video = bool(node.get("is_video") or node.get("video_versions"))
    if is_video:
        url = _str(node.get("video_url")) or _str(_get(node, "video_versions", 0, "url"))
        return RemoteMedia(url=url, type="video") if url else None

    url = _str(node.get("display_url")) or _str(
        _get(node, "image_versions2", "candidates", 0, "url")
    )
    return RemoteMedia(url=url, type="image") if url else None


def instagram_post_from_media_node(media: Mapping[str, Any]) -> ProviderPost:
    """Map a GraphQL/web `shortcode_media` node (or a v1 `items[0]`) to a ProviderPost."""
    caption = _str(_get(media, "edge_media_to_caption", "edges", 0, "node", "text")) or _str(
        _get(media, "caption", "text")
    )
    author = _str(_get(media, "owner", "username")) or _str(_get(media, "user", "username"))

    items: list[RemoteMedia] = []
    sidecar = _get(media, "edge_sidecar_to_children", "edges") or media.get("carousel_media")
    if isinstance(sidecar, list):
        for entry in sidecar:
            node = entry.get("node", entry) if isinstance(entry, Mapping) else None
            if isinstance(node, Mapping):
                resolved = _instagram_node_media(node)
                if resolved is not None:
                    items.append(resolved)

    if not items:
        resolved = _instagram_node_media(media)
        if resolved is not None:
            items.append(resolved)

    if not items:
        raise PageDataError("No media URL found")

    stats: dict[str, int] = {}
    for key, raw in (
        ("likes", _get(media, "edge_media_preview_like", "count") or media.get("like_count")),
        ("views", media.get("video_view_count") or media.get("play_count")),
        ("comments", _get(media, "edge_media_to_comment", "count") or media.get("comment_count")),
    ):
        n = _count(raw)
        if n is not None:
            stats[key] = n

    duration = media.get("video_duration")
    return ProviderPost(
        caption=caption,
        author=author,
        duration=float(duration) if isinstance(duration, (int, float)) and duration > 0 else None,
        media=tuple(items),
        stats=stats,
    )


def parse_instagram_embed(html: str) -> ProviderPost:
    """
    Parse the captioned embed page.

    The `"init"` payload either carries the post directly or wraps it in a
    `contextJSON` string; richer payloads include `gql_data.shortcode_media`.
    """
    match = _EMBED_INIT_RE.search(html or "")
    if not match:
        raise PageDataError("Could not find embed data")

    parsed = _load_json(match.group(1), what="embed")
    data: Any = parsed
    if isinstance(parsed, Mapping) and isinstance(parsed.get("contextJSON"), str):
        data = _load_json(parsed["contextJSON"], what="embed context")

    if not isinstance(data, Mapping) or not data:
        raise PageDataError("Empty embed data")

    node = _get(data, "gql_data", "shortcode_media") or _get(data, "context", "media")
    if isinstance(node, Mapping):
        return instagram_post_from_media_node(node)

    caption = _str(_get(data, "caption", "text")) or _str(data.get("title"))
    author = _str(_get(data, "owner", "username")) or _str(_get(data, "context", "username"))

    video_url = _str(data.get("video_url"))
    display_url = _str(data.get("display_url"))
    if video_url:
        media = RemoteMedia(url=video_url, type="video")
    elif display_url:
        media = RemoteMedia(url=display_url, type="image")
    else:
        raise PageDataError("No media URLs in embed data")

    return ProviderPost(caption=caption, author=author, media=(media,))


def parse_instagram_page(html: str) -> ProviderPost | None:
    """Look for post data inlined in the post page. Returns None when the page has none."""
    shared: Any = None
    additional: Any = None

    match = _SHARED_DATA_RE.search(html or "")
    if match:
        try:
            shared = json.loads(match.group(1))
        except ValueError:
            shared = None

    match = _ADDITIONAL_DATA_RE.search(html or "")
    if match:
        try:
            additional = json.loads(match.group(1))
        except ValueError:
            additional = None

    media = (
        _get(shared, "entry_data", "PostPage", 0, "graphql", "shortcode_media")
        or _get(additional, "graphql", "shortcode_media")
        or _get(additional, "items", 0)
    )
    if not isinstance(media, Mapping):
        return None
    return instagram_post_from_media_node(media)


def instagram_graphql_tokens(html: str) -> tuple[str, str]:
    """Return (lsd, csrf) tokens from the post page; a random LSD is used when absent."""
    lsd_match = _LSD_RE.search(html or "")
    csrf_match = _CSRF_RE.search(html or "")
    lsd = lsd_match.group(1) if lsd_match else uuid.uuid4().hex[:8]
    csrf = csrf_match.group(1) if csrf_match else ""
    return lsd, csrf


def parse_instagram_graphql(payload: Any) -> ProviderPost:
    media = _get(payload, "data", "xdt_shortcode_media") or _get(payload, "data", "shortcode_media")
    if not isinstance(media, Mapping):
        raise PageDataError("Could not find media in page data")
    return instagram_post_from_media_node(media)


def _tiktok_slide_url(image: Any) -> str | None:
    urls = _get(image, "imageURL", "urlList")
    if not isinstance(urls, list):
        return None
    candidates = [u for u in urls if isinstance(u, str) and u.strip()]
    for url in candidates:
        if ".jpeg" in url:
            return url
    return candidates[0] if candidates else None


def parse_tiktok_rehydration(html: str) -> ProviderPost:
    match = _TIKTOK_DATA_RE.search(html or "")
    if not match:
        raise PageDataError("Could not find TikTok data script")

    data = _load_json(match.group(1), what="TikTok")
    detail = _get(data, "__DEFAULT_SCOPE__", "webapp.video-detail")
    if not isinstance(detail, Mapping):
        raise PageDataError("No video detail found in TikTok data")

    status = _str(detail.get("statusMsg"))
    if status:
        raise PageDataError(f"TikTok error: {status}")

    item = _get(detail, "itemInfo", "itemStruct")
    if not isinstance(item, Mapping):
        raise PageDataError("No item structure in TikTok response")

    if item.get("isContentClassified"):
        raise PageDataError("Content is age-restricted")

    author = _str(_get(item, "author", "uniqueId")) or _str(_get(item, "author", "nickname"))
    caption = _str(item.get("desc"))

    stats: dict[str, int] = {}
    raw_stats = item.get("stats") if isinstance(item.get("stats"), Mapping) else {}
    for key, field in (
        ("likes", "diggCount"),
        ("views", "playCount"),
        ("shares", "shareCount"),
        ("comments", "commentCount"),
    ):
        n = _count(raw_stats.get(field))
        if n is not None:
            stats[key] = n

    media: list[RemoteMedia] = []
    images = _get(item, "imagePost", "images")
    if isinstance(images, list):
        for image in images:
            url = _tiktok_slide_url(image)
            if url:
                media.append(RemoteMedia(url=url, type="image"))

    duration_raw = _get(item, "video", "duration")
    duration = (
        float(duration_raw)
        if isinstance(duration_raw, (int, float)) and not isinstance(duration_raw, bool)
        and duration_raw > 0
        else None
    )

    if not media:
        play = (
            _str(_get(item, "video", "playAddr"))
            or _str(_get(item, "video", "downloadAddr"))
            or _str(_get(item, "video", "bitrateInfo", 0, "PlayAddr", "UrlList", 0))
        )
        if not play:
            raise PageDataError("No video URL found")
        media.append(RemoteMedia(url=play, type="video"))

    return ProviderPost(
        caption=caption,
        author=author,
        duration=duration,
        media=tuple(media),
        stats=stats,
    )


class _PageStrategyBase:
    name = "page_scrape"

    def __init__(self, ctx: CallContext, *, retry: RetryConfig | None = None) -> None:
        self._ctx = ctx
        self._retry = retry or RetryConfig(max_attempts=ctx.config.download.retry_attempts)

    async def _get_page(self, url: str, *, platform: str) -> tuple[str, str]:
        async def _do_get() -> tuple[str, str]:
            return await fetch_text(
                self._ctx.http,
                url,
                timeout=self._ctx.config.download.metadata_timeout_seconds,
                headers=page_headers(platform),
            )

        return await call_with_retries(
            _do_get,
            cfg=self._retry,
            is_retryable=is_retryable_http_exception,
            operation=f"page:{platform}",
        )

    async def _download(self, post: ProviderPost) -> DownloadResult:
        return await self._ctx.downloader.fetch_post(post, strategy=self.name)


class InstagramPageStrategy(_PageStrategyBase):
    """Public embed page, then the post page, then the anonymous GraphQL post query."""

    async def attempt(self, url: str) -> DownloadResult:
        shortcode = instagram_shortcode(url)
        if not shortcode:
            return DownloadResult.failure("Could not extract Instagram post ID", strategy=self.name)

        log = self._ctx.logger
        errors: list[str] = []

        for label, method in (("embed", self._from_embed), ("page", self._from_post_page)):
            try:
                post = await method(shortcode)
            except (PageDataError, httpx.HTTPError) as e:
                errors.append(f"{label}: {e}")
                log.info("instagram_page_method_failed", method=label, error=str(e))
                continue

            result = await self._download(post)
            if result.success:
                return result
            errors.append(f"{label}: {result.error}")
            log.info("instagram_page_method_failed", method=label, error=result.error)

        return DownloadResult.failure(
            "All Instagram page methods failed. Content may be private or age-restricted. "
            f"({'; '.join(errors)})",
            strategy=self.name,
        )

    async def _from_embed(self, shortcode: str) -> ProviderPost:
        _, html = await self._get_page(
            f"https://www.instagram.com/p/{shortcode}/embed/captioned/", platform=INSTAGRAM
        )
        return parse_instagram_embed(html)

    async def _from_post_page(self, shortcode: str) -> ProviderPost:
        _, html = await self._get_page(f"https://www.instagram.com/p/{shortcode}/", platform=INSTAGRAM)
        post = parse_instagram_page(html)
        if post is not None:
            return post

        lsd, csrf = instagram_graphql_tokens(html)
        form = {
            "fb_api_caller_class": "RelayModern",
            "fb_api_req_friendly_name": IG_POST_QUERY_NAME,
            "variables": json.dumps(
                {
                    "shortcode": shortcode,
                    "fetch_tagged_user_count": None,
                    "hoisted_comment_id": None,
                    "hoisted_reply_id": None,
                }
            ),
            "server_timestamps": "true",
            "doc_id": IG_POST_QUERY_DOC_ID,
        }
        headers = page_headers(
            INSTAGRAM,
            **{
                "X-FB-LSD": lsd,
                "X-CSRFToken": csrf,
                "X-IG-App-ID": IG_APP_ID,
                "X-FB-Friendly-Name": IG_POST_QUERY_NAME,
            },
        )
        response = await self._ctx.http.post(
            IG_GRAPHQL_URL,
            data=form,
            headers=headers,
            timeout=self._ctx.config.download.metadata_timeout_seconds,
        )
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as e:
            raise PageDataError("GraphQL response was not JSON") from e
        return parse_instagram_graphql(payload)


class TikTokPageStrategy(_PageStrategyBase):
    """Follow short-link redirects and read the rehydration payload of the video page."""

    async def attempt(self, url: str) -> DownloadResult:
        try:
            final_url, html = await self._get_page(url, platform=TIKTOK)
        except httpx.HTTPError as e:
            return DownloadResult.failure(f"TikTok page request failed: {e}", strategy=self.name)

        video_id = tiktok_video_id(final_url) or tiktok_video_id(url)
        if not video_id:
            return DownloadResult.failure("Could not extract TikTok video ID", strategy=self.name)

        self._ctx.logger.debug("tiktok_url_resolved", resolved_url=final_url, video_id=video_id)

        try:
            post = parse_tiktok_rehydration(html)
        except PageDataError as e:
            return DownloadResult.failure(str(e), strategy=self.name)

        return await self._download(post)
