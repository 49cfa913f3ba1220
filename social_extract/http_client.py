from __future__ import annotations

from pathlib import Path
from typing import Mapping

import httpx

from .platforms import INSTAGRAM, TIKTOK

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

_BASE_HEADERS: dict[str, str] = {
    "User-Agent": USER_AGENT,
    "Accept-Language": "en-US,en;q=0.9",
}

_PAGE_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

_REFERERS: dict[str, str] = {
    INSTAGRAM: "https://www.instagram.com/",
    TIKTOK: "https://www.tiktok.com/",
}

_CHUNK_SIZE = 64 * 1024


def page_headers(platform: str | None = None, **extra: str) -> dict[str, str]:
    headers = dict(_BASE_HEADERS)
    headers["Accept"] = _PAGE_ACCEPT
    referer = _REFERERS.get(platform or "")
    if referer:
        headers["Referer"] = referer
    headers.update(extra)
    return headers


def media_headers(platform: str | None = None) -> dict[str, str]:
    headers = dict(_BASE_HEADERS)
    headers["Accept"] = "*/*"
    referer = _REFERERS.get(platform or "")
    if referer:
        headers["Referer"] = referer
    return headers


def new_async_client(*, timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(timeout),
        headers=_BASE_HEADERS,
    )


async def fetch_text(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float,
    headers: Mapping[str, str] | None = None,
) -> tuple[str, str]:
    """GET a page and return (final_url, body). Raises httpx errors on failure."""
    response = await client.get(url, headers=dict(headers or {}), timeout=timeout)
    response.raise_for_status()
    return str(response.url), response.text


async def stream_to_file(
    client: httpx.AsyncClient,
    url: str,
    dest: Path,
    *,
    timeout: float,
    headers: Mapping[str, str] | None = None,
) -> int:
    """
    Stream a response body to dest and return the number of bytes written.

    Raises httpx.HTTPStatusError on non-2xx responses. The caller owns dest on failure.
    """
    written = 0
    async with client.stream("GET", url, headers=dict(headers or {}), timeout=timeout) as response:
        response.raise_for_status()
        with dest.open("wb") as fp:
            async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                if chunk:
                    fp.write(chunk)
                    written += len(chunk)
    return written
