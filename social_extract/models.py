from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Mapping, Sequence

MediaType = Literal["video", "image"]


@dataclass(frozen=True)
class ExtractionRequest:
    url: str
    platform: str


@dataclass(frozen=True)
class RemoteMedia:
    """A media URL resolved from provider data, not yet downloaded."""

    url: str
    type: MediaType


@dataclass(frozen=True)
class ProviderPost:
    """Provider-neutral view of one post: text fields plus its media in source order."""

    caption: str | None = None
    author: str | None = None
    title: str | None = None
    duration: float | None = None
    media: tuple[RemoteMedia, ...] = ()
    stats: Mapping[str, Any] = field(default_factory=dict)

    def metadata(self) -> "MediaMetadata":
        return MediaMetadata(
            title=self.title,
            author=self.author,
            duration=self.duration,
            stats=dict(self.stats),
        )


@dataclass(frozen=True)
class MediaFile:
    path: Path
    type: MediaType
    index: int = 0


@dataclass(frozen=True)
class MediaMetadata:
    title: str | None = None
    author: str | None = None
    duration: float | None = None
    media_count: int | None = None
    stats: Mapping[str, Any] = field(default_factory=dict)

    def with_media_count(self, count: int) -> "MediaMetadata":
        return MediaMetadata(
            title=self.title,
            author=self.author,
            duration=self.duration,
            media_count=count,
            stats=self.stats,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "title": self.title,
            "author": self.author,
            "duration": self.duration,
            "mediaCount": self.media_count,
        }
        if self.stats:
            out["stats"] = dict(self.stats)
        return {k: v for k, v in out.items() if v is not None}


@dataclass(frozen=True)
class DownloadResult:
    """Outcome of exactly one strategy attempt."""

    success: bool
    file_path: Path | None = None
    media_type: MediaType | None = None
    is_carousel: bool = False
    carousel_files: tuple[MediaFile, ...] = ()
    caption: str | None = None
    metadata: MediaMetadata | None = None
    error: str | None = None
    strategy: str | None = None

    @classmethod
    def failure(cls, error: str, *, strategy: str | None = None) -> "DownloadResult":
        return cls(success=False, error=(error or "").strip() or "unknown error", strategy=strategy)

    @classmethod
    def from_files(
        cls,
        files: Sequence[MediaFile],
        *,
        caption: str | None = None,
        metadata: MediaMetadata | None = None,
        strategy: str | None = None,
        error: str = "No media could be downloaded",
    ) -> "DownloadResult":
        """
        Build a result from the files that downloaded successfully.

        More than one file makes a carousel; a single survivor is treated as the whole post.
        """
        ordered = tuple(sorted(files, key=lambda f: f.index))
        if not ordered:
            return cls.failure(error, strategy=strategy)

        meta = metadata
        if len(ordered) > 1:
            meta = (metadata or MediaMetadata()).with_media_count(len(ordered))
            return cls(
                success=True,
                is_carousel=True,
                carousel_files=ordered,
                caption=caption,
                metadata=meta,
                strategy=strategy,
            )

        only = ordered[0]
        return cls(
            success=True,
            file_path=only.path,
            media_type=only.type,
            caption=caption,
            metadata=meta,
            strategy=strategy,
        )

    @property
    def files(self) -> tuple[MediaFile, ...]:
        if self.is_carousel:
            return self.carousel_files
        if self.file_path is not None:
            return (MediaFile(path=self.file_path, type=self.media_type or "video"),)
        return ()


@dataclass(frozen=True)
class CarouselItem:
    index: int
    type: MediaType
    ocr_text: str | None = None
    transcript: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"index": self.index, "type": self.type}
        if self.ocr_text:
            out["ocrText"] = self.ocr_text
        if self.transcript:
            out["transcript"] = self.transcript
        return out


@dataclass(frozen=True)
class MusicClassification:
    is_likely_music: bool
    confidence: float
    music_score: int = 0
    narration_score: int = 0


@dataclass(frozen=True)
class ProcessedMedia:
    transcript: str | None = None
    ocr_text: str | None = None


@dataclass(frozen=True)
class ExtractionResult:
    platform: str
    url: str
    success: bool
    error: str | None = None
    caption: str | None = None
    audio_transcript: str | None = None
    ocr_text: str | None = None
    metadata: MediaMetadata | None = None
    carousel_items: tuple[CarouselItem, ...] | None = None

    @classmethod
    def failure(cls, *, platform: str, url: str, error: str) -> "ExtractionResult":
        return cls(platform=platform, url=url, success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "platform": self.platform,
            "url": self.url,
            "success": self.success,
        }
        if self.error:
            out["error"] = self.error
        if self.caption:
            out["caption"] = self.caption
        if self.audio_transcript:
            out["audioTranscript"] = self.audio_transcript
        if self.ocr_text:
            out["ocrText"] = self.ocr_text
        if self.metadata is not None:
            out["metadata"] = self.metadata.to_dict()
        if self.carousel_items is not None:
            out["carouselItems"] = [item.to_dict() for item in self.carousel_items]
        return out
