from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx

from .config_schema import AppConfig
from .downloader import MediaDownloader
from .models import DownloadResult
from .run_log import RunLogger
from .scratch import ScratchSpace


class ExtractionStrategy(Protocol):
    """One way of turning a post URL into downloaded media plus caption/metadata."""

    name: str

    async def attempt(self, url: str) -> DownloadResult: ...


@dataclass(frozen=True)
class CallContext:
    """Resources owned by a single extraction call and shared by its strategies."""

    platform: str
    config: AppConfig
    http: httpx.AsyncClient
    scratch: ScratchSpace
    downloader: MediaDownloader
    logger: RunLogger
