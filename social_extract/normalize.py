from __future__ import annotations

from typing import Any, Iterable, Mapping

from .models import MediaType, ProviderPost, RemoteMedia


def _coerce_str(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s if s else None
    return None


def _coerce_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value >= 0 else None
    if isinstance(value, str):
        try:
            n = float(value.strip())
        except ValueError:
            return None
        return n if n >= 0 else None
    return None


def _coerce_count(value: Any) -> int | None:
    n = _coerce_number(value)
    return int(n) if n is not None else None


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    return None


def _first_str(item: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = _coerce_str(item.get(key))
        if value:
            return value
    return None


def _first_url(value: Any) -> str | None:
    """Accept a URL string or a list of URLs (first non-empty wins)."""
    if isinstance(value, str):
        return _coerce_str(value)
    if isinstance(value, list):
        for entry in value:
            url = _coerce_str(entry)
            if url:
                return url
    return None


def _stats(**counters: Any) -> dict[str, int]:
    out: dict[str, int] = {}
    for key, raw in counters.items():
        n = _coerce_count(raw)
        if n is not None:
            out[key] = n
    return out


def _dedupe_media(media: Iterable[RemoteMedia]) -> tuple[RemoteMedia, ...]:
    out: list[RemoteMedia] = []
    seen: set[str] = set()
    for m in media:
        if m.url in seen:
            continue
        seen.add(m.url)
        out.append(m)
    return tuple(out)


def _instagram_child_media(child: Mapping[str, Any]) -> RemoteMedia | None:
    video_url = _first_str(child, "videoUrl", "video_url")
    if video_url:
        return RemoteMedia(url=video_url, type="video")

    child_type = (_coerce_str(child.get("type")) or "").casefold()
    image_url = _first_str(child, "displayUrl", "display_url", "imageUrl")
    if image_url and child_type != "video":
        return RemoteMedia(url=image_url, type="image")
    return None


def provider_post_from_instagram_item(item: Mapping[str, Any]) -> ProviderPost | None:
    """
    Best-effort mapping of an Instagram Scraper dataset item.

    Sidecar posts keep their children in order; a video without a playable URL falls
    back to its display image so the post can still be OCR'd.
    """
    if not isinstance(item, Mapping):
        return None
    if _coerce_str(item.get("error")):
        return None

    post_type = (_coerce_str(item.get("type")) or "").casefold()
    media: list[RemoteMedia] = []

    children = item.get("childPosts")
    if isinstance(children, list) and children:
        for child in children:
            if isinstance(child, Mapping):
                resolved = _instagram_child_media(child)
                if resolved is not None:
                    media.append(resolved)

    if not media and post_type == "sidecar":
        images = item.get("images")
        if isinstance(images, list):
            for url in images:
                s = _coerce_str(url)
                if s:
                    media.append(RemoteMedia(url=s, type="image"))

    if not media:
        video_url = _first_str(item, "videoUrl", "video_url")
        display_url = _first_str(item, "displayUrl", "display_url")
        if video_url:
            media.append(RemoteMedia(url=video_url, type="video"))
        elif display_url:
            media.append(RemoteMedia(url=display_url, type="image"))

    owner = item.get("owner")
    author = _first_str(item, "ownerUsername", "owner_username", "ownerFullName")
    if author is None and isinstance(owner, Mapping):
        author = _coerce_str(owner.get("username"))

    caption = _first_str(item, "caption", "captionText", "text")

    return ProviderPost(
        caption=caption,
        author=author,
        title=_first_str(item, "title"),
        duration=_coerce_number(item.get("videoDuration")),
        media=_dedupe_media(media),
        stats=_stats(
            likes=item.get("likesCount"),
            views=item.get("videoViewCount") or item.get("videoPlayCount"),
            comments=item.get("commentsCount"),
        ),
    )


def _tiktok_slideshow_media(item: Mapping[str, Any]) -> list[RemoteMedia]:
    out: list[RemoteMedia] = []
    links = item.get("slideshowImageLinks")
    if not isinstance(links, list):
        return out
    for link in links:
        url: str | None = None
        if isinstance(link, Mapping):
            url = _first_str(link, "downloadLink", "tiktokLink")
        else:
            url = _coerce_str(link)
        if url:
            out.append(RemoteMedia(url=url, type="image"))
    return out


def provider_post_from_tiktok_item(item: Mapping[str, Any]) -> ProviderPost | None:
    """
    Best-effort mapping of a TikTok Scraper dataset item.

    Photo slideshows become image items; otherwise the downloaded video (mediaUrls)
    or play address is used, with the cover image as a last resort.
    """
    if not isinstance(item, Mapping):
        return None
    if _coerce_str(item.get("error")):
        return None

    media: list[RemoteMedia] = []
    is_slideshow = _coerce_bool(item.get("isSlideshow")) is True
    if is_slideshow:
        media.extend(_tiktok_slideshow_media(item))

    video_meta = item.get("videoMeta") if isinstance(item.get("videoMeta"), Mapping) else {}
    author_meta = item.get("authorMeta") if isinstance(item.get("authorMeta"), Mapping) else {}
    music_meta = item.get("musicMeta") if isinstance(item.get("musicMeta"), Mapping) else {}

    if not media:
        video_url = (
            _first_url(item.get("mediaUrls"))
            or _first_str(video_meta, "downloadAddr", "playAddr")
            or _first_str(item, "videoUrl")
        )
        if video_url:
            media.append(RemoteMedia(url=video_url, type=media_type_from_url(video_url)))
        else:
            cover = _first_str(video_meta, "coverUrl", "originalCoverUrl") or _first_str(
                item, "coverUrl"
            )
            if cover:
                media.append(RemoteMedia(url=cover, type="image"))

    author = _first_str(author_meta, "name", "nickName") or _first_str(item, "authorName")

    stats = _stats(
        likes=item.get("diggCount"),
        views=item.get("playCount"),
        shares=item.get("shareCount"),
        comments=item.get("commentCount"),
    )
    music_name = _coerce_str(music_meta.get("musicName"))
    music_author = _coerce_str(music_meta.get("musicAuthor"))
    extra: dict[str, Any] = dict(stats)
    if music_name:
        extra["music"] = f"{music_name} - {music_author}" if music_author else music_name

    return ProviderPost(
        caption=_first_str(item, "text", "desc", "description"),
        author=author,
        title=None,
        duration=_coerce_number(video_meta.get("duration")),
        media=_dedupe_media(media),
        stats=extra,
    )


def media_type_from_url(url: str, default: MediaType = "video") -> MediaType:
    path = (url or "").split("?", 1)[0].casefold()
    if path.endswith((".jpg", ".jpeg", ".png", ".webp", ".heic")):
        return "image"
    if path.endswith((".mp4", ".mov", ".webm", ".m4v")):
        return "video"
    return default
