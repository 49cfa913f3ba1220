from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Protocol

from .config_schema import AudioConfig, ClassifierConfig, OpenAIConfig
from .errors import MediaToolError, TranscriptionUnavailable
from .media_tool import MediaUtility
from .music_classifier import classify_transcript
from .retry import RetryConfig, RetryEvent, call_with_retries
from .retry_policy import is_retryable_openai_exception
from .run_log import RunLogger
from .scratch import ScratchSpace


class _TranscriptionsAPI(Protocol):
    async def create(self, **kwargs: Any) -> Any: ...


class _AudioAPI(Protocol):
    transcriptions: _TranscriptionsAPI


class _OpenAIAudioClient(Protocol):
    audio: _AudioAPI


def _transcript_text(response: Any) -> str:
    if isinstance(response, str):
        return response.strip()
    text = getattr(response, "text", None)
    if isinstance(text, str):
        return text.strip()
    return str(response or "").strip()


class AudioTranscriber:
    """
    Video audio to text.

    Extracts a compact MP3 into scratch, sends it to the speech-to-text model and
    labels lyrics-like results. Any failure yields None; the MP3 is always removed.
    """

    def __init__(
        self,
        client: _OpenAIAudioClient,
        media: MediaUtility,
        scratch: ScratchSpace,
        *,
        openai_cfg: OpenAIConfig,
        audio_cfg: AudioConfig,
        classifier_cfg: ClassifierConfig,
        logger: RunLogger | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self._client = client
        self._media = media
        self._scratch = scratch
        self._openai_cfg = openai_cfg
        self._audio_cfg = audio_cfg
        self._classifier_cfg = classifier_cfg
        self._log = logger or RunLogger.disabled()
        self._retry = retry or RetryConfig()

    def _on_retry(self, event: RetryEvent) -> None:
        self._log.warning(
            "transcription_retry",
            attempt=event.failure_attempt,
            delay_seconds=round(event.delay_seconds, 3),
            reason=event.reason,
        )

    async def transcribe(self, video: Path, *, index: int | None = None) -> str | None:
        try:
            return await self._transcribe(video, index=index)
        except TranscriptionUnavailable as e:
            self._log.info("transcription_unavailable", index=index, reason=str(e))
            return None

    async def _transcribe(self, video: Path, *, index: int | None) -> str | None:
        cfg = self._audio_cfg
        with self._scratch.scoped_file("audio", ".mp3", index=index) as audio_path:
            try:
                extracted = await self._media.extract_audio(
                    video,
                    audio_path,
                    timeout=cfg.extract_timeout_seconds,
                    sample_rate=cfg.sample_rate,
                    bitrate=cfg.bitrate,
                )
            except MediaToolError as e:
                raise TranscriptionUnavailable(f"audio extraction failed: {e}") from e

            if extracted is None or not extracted.exists():
                raise TranscriptionUnavailable("no audio track found")

            size = extracted.stat().st_size
            if size < cfg.min_audio_bytes:
                raise TranscriptionUnavailable("audio file too small, likely silent")
            if size > cfg.max_audio_bytes:
                raise TranscriptionUnavailable(
                    f"audio too large for transcription ({size // (1024 * 1024)}MB)"
                )

            try:
                data = await asyncio.to_thread(extracted.read_bytes)
            except OSError as e:
                raise TranscriptionUnavailable(f"could not read extracted audio: {e}") from e

            async def _do_call() -> Any:
                return await self._client.audio.transcriptions.create(
                    model=self._openai_cfg.transcription_model,
                    file=(extracted.name, data, "audio/mpeg"),
                    response_format="text",
                )

            try:
                response = await call_with_retries(
                    _do_call,
                    cfg=self._retry,
                    is_retryable=is_retryable_openai_exception,
                    operation="openai.audio.transcriptions",
                    on_retry=self._on_retry,
                )
            except Exception as e:
                raise TranscriptionUnavailable(f"transcription request failed: {e}") from e

        transcript = _transcript_text(response)
        if not transcript:
            return None

        verdict = classify_transcript(transcript, self._classifier_cfg)
        self._log.debug(
            "transcription_complete",
            index=index,
            chars=len(transcript),
            music_score=verdict.music_score,
            narration_score=verdict.narration_score,
        )
        if verdict.is_likely_music:
            self._log.info(
                "background_music_detected", index=index, confidence=round(verdict.confidence, 2)
            )
            return f"{self._classifier_cfg.music_label}\n{transcript}"
        return transcript
