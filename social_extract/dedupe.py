from __future__ import annotations

import re
from typing import Iterable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .platforms import (
    INSTAGRAM,
    TIKTOK,
    YOUTUBE,
    detect_platform,
    instagram_shortcode,
    tiktok_video_id,
)

_WS_RE = re.compile(r"\s+")

# Query parameters that identify the content rather than the visit.
_KEEP_QUERY = {YOUTUBE: ("v",)}


def canonicalize_url(url: str) -> str:
    value = (url or "").strip()
    if not value:
        return ""

    try:
        parts = urlsplit(value)
    except ValueError:
        return value.rstrip("/")

    if not parts.scheme or not parts.netloc:
        return value.rstrip("/")

    scheme = parts.scheme.lower()
    netloc = parts.netloc.lower()
    if netloc.startswith("www."):
        netloc = netloc[4:]
    elif netloc.startswith("m."):
        netloc = netloc[2:]

    path = (parts.path or "").rstrip("/")
    if not path:
        path = "/"

    keep = _KEEP_QUERY.get(detect_platform(value) or "", ())
    query = urlencode([(k, v) for k, v in parse_qsl(parts.query) if k in keep])

    return urlunsplit((scheme, netloc, path, query, ""))


def cache_key(url: str) -> str:
    """
    Stable key for the external content cache.

    Prefers the platform's own post id so that share links and tracking variants of
    the same post collide.
    """
    platform = detect_platform(url)
    if platform == INSTAGRAM:
        code = instagram_shortcode(url)
        if code:
            return f"instagram:{code}"
    if platform == TIKTOK:
        vid = tiktok_video_id(url)
        if vid:
            return f"tiktok:{vid}"
    return f"url:{canonicalize_url(url)}"


def normalize_text(text: str) -> str:
    return _WS_RE.sub(" ", (text or "").casefold()).strip()


def jaccard_similarity(a: str, b: str) -> float:
    words_a = set(a.split(" "))
    words_b = set(b.split(" "))
    union = len(words_a | words_b)
    if union == 0:
        return 0.0
    return len(words_a & words_b) / union


def dedupe_texts(
    texts: Iterable[str],
    *,
    substring_min_chars: int = 20,
    similarity_threshold: float = 0.85,
) -> list[str]:
    """
    Collapse near-identical OCR readings while keeping first-seen order.

    A reading is a duplicate of a kept one when the normalized texts are equal, one
    contains the other (shorter side longer than substring_min_chars), or their word
    sets overlap above similarity_threshold. The longer reading replaces the kept one.
    """
    unique: list[str] = []
    normalized: list[str] = []

    for text in texts:
        new_norm = normalize_text(text)

        for i, old_norm in enumerate(normalized):
            if new_norm == old_norm:
                break

            shorter, longer = sorted((new_norm, old_norm), key=len)
            if len(shorter) > substring_min_chars and shorter in longer:
                if len(new_norm) > len(old_norm):
                    unique[i], normalized[i] = text, new_norm
                break

            if jaccard_similarity(new_norm, old_norm) > similarity_threshold:
                if len(text) > len(unique[i]):
                    unique[i], normalized[i] = text, new_norm
                break
        else:
            unique.append(text)
            normalized.append(new_norm)

    return unique
