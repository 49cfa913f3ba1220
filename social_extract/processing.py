from __future__ import annotations

import asyncio

from .models import MediaFile, ProcessedMedia
from .ocr import OnScreenTextAggregator
from .run_log import RunLogger
from .scratch import ScratchSpace
from .transcription import AudioTranscriber


class MediaProcessor:
    """
    Runs the text-producing stages for one downloaded file and releases it afterwards.

    A video's transcription and OCR run side by side; one stage failing leaves the
    other's text in place.
    """

    def __init__(
        self,
        transcriber: AudioTranscriber,
        on_screen: OnScreenTextAggregator,
        scratch: ScratchSpace,
        *,
        logger: RunLogger | None = None,
    ) -> None:
        self._transcriber = transcriber
        self._on_screen = on_screen
        self._scratch = scratch
        self._log = logger or RunLogger.disabled()

    def _stage_text(
        self, stage: str, outcome: str | None | BaseException, index: int | None
    ) -> str | None:
        if not isinstance(outcome, BaseException):
            return outcome
        if not isinstance(outcome, Exception):
            raise outcome
        self._log.exception("media_stage_failed", exc=outcome, stage=stage, index=index)
        return None

    async def process(self, media: MediaFile, *, index: int | None = None) -> ProcessedMedia:
        try:
            if media.type == "video":
                transcript, ocr_text = await asyncio.gather(
                    self._transcriber.transcribe(media.path, index=index),
                    self._on_screen.video_text(media.path, index=index),
                    return_exceptions=True,
                )
                return ProcessedMedia(
                    transcript=self._stage_text("transcription", transcript, index),
                    ocr_text=self._stage_text("ocr", ocr_text, index),
                )

            ocr_text = await self._on_screen.image_text(media.path, index=index)
            return ProcessedMedia(ocr_text=ocr_text)
        finally:
            self._scratch.discard(media.path)
