from __future__ import annotations

import re

INSTAGRAM = "instagram"
TIKTOK = "tiktok"
YOUTUBE = "youtube"
TWITTER = "twitter"
FACEBOOK = "facebook"
REDDIT = "reddit"

# Platforms with a dedicated provider and page-scrape path ahead of the generic downloader.
PRIMARY_PLATFORMS = frozenset({INSTAGRAM, TIKTOK})

# Order matters: the first matching pattern wins.
_PLATFORM_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    (INSTAGRAM, re.compile(r"instagram\.com/(?:[\w.]+/)?(?:reels?|p|tv|stories)/", re.I)),
    (
        TIKTOK,
        re.compile(
            r"tiktok\.com/@[\w.-]+/(?:video|photo)/\d+"
            r"|(?:vm|vt)\.tiktok\.com/\w+"
            r"|tiktok\.com/t/\w+",
            re.I,
        ),
    ),
    (YOUTUBE, re.compile(r"(?:youtube\.com/(?:watch\?|shorts/)|youtu\.be/)", re.I)),
    (TWITTER, re.compile(r"(?:^|//|\.)(?:twitter|x)\.com/\w+/status/\d+", re.I)),
    (
        FACEBOOK,
        re.compile(r"facebook\.com/(?:watch|reel|share/[rv]|[\w.]+/videos)/|fb\.watch/", re.I),
    ),
    (REDDIT, re.compile(r"reddit\.com/r/\w+/comments/|redd\.it/\w+", re.I)),
)

_INSTAGRAM_ID_PATTERNS = (
    re.compile(r"instagram\.com/(?:[\w.]+/)?(?:p|reels?|tv)/([A-Za-z0-9_-]+)", re.I),
    re.compile(r"instagram\.com/stories/[\w.]+/(\d+)", re.I),
)

_TIKTOK_ID_RE = re.compile(r"tiktok\.com/@[\w.-]+/(?:video|photo)/(\d+)", re.I)
_TIKTOK_RESOLVED_ID_RE = re.compile(r"/(?:video|photo)/(\d+)")


def supported_platforms() -> tuple[str, ...]:
    return tuple(name for name, _ in _PLATFORM_PATTERNS)


def detect_platform(url: str) -> str | None:
    """Classify a post URL into a known platform, or None when unsupported."""
    value = (url or "").strip()
    if not value:
        return None

    for name, pattern in _PLATFORM_PATTERNS:
        if pattern.search(value):
            return name
    return None


def instagram_shortcode(url: str) -> str | None:
    for pattern in _INSTAGRAM_ID_PATTERNS:
        match = pattern.search(url or "")
        if match:
            return match.group(1)
    return None


def tiktok_video_id(url: str) -> str | None:
    """Numeric TikTok item id; short links have none until their redirect is followed."""
    match = _TIKTOK_ID_RE.search(url or "")
    if match:
        return match.group(1)

    match = _TIKTOK_RESOLVED_ID_RE.search(url or "")
    if match and "tiktok.com" in (url or "").casefold():
        return match.group(1)
    return None
