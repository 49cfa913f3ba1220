from __future__ import annotations

import asyncio
import base64
import re
from pathlib import Path
from typing import Any, Protocol

from .config_schema import OCRConfig, OpenAIConfig
from .dedupe import dedupe_texts
from .errors import OCRUnavailable
from .fanout import bounded_gather
from .frames import FrameSampler
from .retry import RetryConfig, RetryEvent, call_with_retries
from .retry_policy import is_retryable_openai_exception
from .run_log import RunLogger
from .scratch import ScratchSpace

NO_TEXT = "NO_TEXT"

OCR_PROMPT = (
    "Extract ALL visible text from this image. Include titles, captions, overlay text, "
    "prices, dates, locations, and any other readable text. Return ONLY the extracted "
    f'text, nothing else. If there is no text, return "{NO_TEXT}".'
)

# The model sometimes paraphrases the sentinel ("No text found.").
_NO_TEXT_RE = re.compile(r"^\W*no[\s_]text(?:\s+(?:found|visible|detected|present))?\W*$", re.I)

_MIME_BY_SUFFIX = {
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


class _ResponsesAPI(Protocol):
    async def create(self, **kwargs: Any) -> Any: ...


class _OpenAIClient(Protocol):
    responses: _ResponsesAPI


class SceneTextRecognizer(Protocol):
    async def recognize(self, image: Path) -> str | None: ...


def is_no_text(text: str | None) -> bool:
    return not (text or "").strip() or bool(_NO_TEXT_RE.match(text.strip()))


def _extract_output_text(response: Any) -> str:
    direct = (getattr(response, "output_text", None) or "").strip()
    if direct:
        return direct

    output = getattr(response, "output", None) or []
    for item in output:
        content = getattr(item, "content", None) or []
        for part in content:
            text = getattr(part, "text", None)
            if isinstance(text, str) and text.strip():
                return text.strip()

    return ""


def image_data_url(data: bytes, suffix: str) -> str:
    mime = _MIME_BY_SUFFIX.get(suffix.casefold(), "image/jpeg")
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


class OpenAIVisionOCR:
    """Scene-text recognition through a vision-capable model on the Responses API."""

    def __init__(
        self,
        client: _OpenAIClient,
        *,
        openai_cfg: OpenAIConfig,
        retry: RetryConfig | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        self._client = client
        self._cfg = openai_cfg
        self._retry = retry or RetryConfig()
        self._log = logger or RunLogger.disabled()

    def _on_retry(self, event: RetryEvent) -> None:
        self._log.warning(
            "ocr_retry",
            attempt=event.failure_attempt,
            delay_seconds=round(event.delay_seconds, 3),
            reason=event.reason,
        )

    async def recognize(self, image: Path) -> str | None:
        """Return the text visible in image, or None when it has none. Raises OCRUnavailable."""
        try:
            data = await asyncio.to_thread(image.read_bytes)
        except OSError as e:
            raise OCRUnavailable(f"Failed to read image {image.name}: {e}") from e

        url = image_data_url(data, image.suffix)

        async def _do_call() -> Any:
            return await self._client.responses.create(
                model=self._cfg.ocr_model,
                input=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "input_text", "text": OCR_PROMPT},
                            {"type": "input_image", "image_url": url, "detail": "high"},
                        ],
                    }
                ],
                max_output_tokens=self._cfg.ocr_max_output_tokens,
            )

        try:
            response = await call_with_retries(
                _do_call,
                cfg=self._retry,
                is_retryable=is_retryable_openai_exception,
                operation="openai.responses.ocr",
                on_retry=self._on_retry,
            )
        except Exception as e:
            raise OCRUnavailable(f"OpenAI OCR call failed ({self._cfg.ocr_model}): {e}") from e

        text = _extract_output_text(response)
        return None if is_no_text(text) else text


class OnScreenTextAggregator:
    """
    Turns images and videos into deduplicated on-screen text.

    Videos are sampled into a throwaway frame directory that is removed whether or
    not recognition succeeds.
    """

    def __init__(
        self,
        recognizer: SceneTextRecognizer,
        sampler: FrameSampler,
        scratch: ScratchSpace,
        *,
        cfg: OCRConfig,
        logger: RunLogger | None = None,
    ) -> None:
        self._recognizer = recognizer
        self._sampler = sampler
        self._scratch = scratch
        self._cfg = cfg
        self._log = logger or RunLogger.disabled()

    def _keep(self, text: str | None) -> str | None:
        if text is None:
            return None
        cleaned = text.strip()
        if len(cleaned) < self._cfg.min_text_chars or is_no_text(cleaned):
            return None
        return cleaned

    async def image_text(self, image: Path, *, index: int | None = None) -> str | None:
        try:
            return self._keep(await self._recognizer.recognize(image))
        except OCRUnavailable as e:
            self._log.info("ocr_unavailable", index=index, error=str(e))
            return None

    async def video_text(self, video: Path, *, index: int | None = None) -> str | None:
        with self._scratch.scoped_dir("frames") as frames_dir:
            frames = await self._sampler.sample(video, frames_dir)
            if not frames:
                self._log.info("no_frames_extracted", index=index)
                return None

            def _on_error(_: int, frame: Path, exc: BaseException) -> None:
                self._log.info("frame_ocr_failed", index=index, frame=frame.name, error=str(exc))

            async def _read(frame: Path) -> str | None:
                return self._keep(await self._recognizer.recognize(frame))

            readings = await bounded_gather(
                frames, _read, limit=self._cfg.max_concurrency, on_error=_on_error
            )

        texts = [t for t in readings if t]
        if not texts:
            return None

        unique = dedupe_texts(
            texts,
            substring_min_chars=self._cfg.substring_min_chars,
            similarity_threshold=self._cfg.similarity_threshold,
        )
        self._log.debug("ocr_complete", index=index, frames=len(frames), unique=len(unique))
        return self._cfg.separator.join(unique)
