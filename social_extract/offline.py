from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path

from .models import DownloadResult, MediaFile, MediaMetadata
from .strategy import CallContext, ExtractionStrategy

# 1x1 transparent PNG.
_PIXEL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

_OFFLINE_CAPTION = (
    "Three spots for a slow Sunday: brunch at the corner bakery, the riverside walk, "
    "and sunset from the old bridge."
)

_OFFLINE_SLIDE_TEXT = (
    "SUNDAY GUIDE\nCorner Bakery - open 8am",
    "Riverside Walk\n2.5 km loop, free",
)


@dataclass
class OfflineStrategy:
    """
    Network-free stub for smoke checks.

    Writes a small deterministic slideshow into the call's scratch space.
    """

    ctx: CallContext
    slides: int = len(_OFFLINE_SLIDE_TEXT)
    name: str = "offline"

    async def attempt(self, url: str) -> DownloadResult:
        files: list[MediaFile] = []
        for idx in range(self.slides):
            path = self.ctx.scratch.file_path("offline", ".png", index=idx)
            path.write_bytes(_PIXEL_PNG)
            files.append(MediaFile(path=path, type="image", index=idx))

        return DownloadResult.from_files(
            files,
            caption=_OFFLINE_CAPTION,
            metadata=MediaMetadata(title="Offline sample post", author="offline_author"),
            strategy=self.name,
        )


def offline_strategies(ctx: CallContext) -> list[ExtractionStrategy]:
    return [OfflineStrategy(ctx)]


class OfflineRecognizer:
    """Deterministic scene-text stub keyed on the item index encoded in the file name."""

    async def recognize(self, image: Path) -> str | None:
        try:
            idx = int(image.stem.rsplit("_", 1)[-1])
        except ValueError:
            return None
        if 0 <= idx < len(_OFFLINE_SLIDE_TEXT):
            return _OFFLINE_SLIDE_TEXT[idx]
        return None


def offline_recognizer(_: CallContext) -> OfflineRecognizer:
    return OfflineRecognizer()
