from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from typing import Any

from social_extract.config_schema import AudioConfig, ClassifierConfig, OpenAIConfig
from social_extract.errors import MediaToolError
from social_extract.retry import RetryConfig
from social_extract.scratch import ScratchSpace
from social_extract.transcription import AudioTranscriber


class _UnreadablePath(type(Path())):  # type: ignore[misc]
    def read_bytes(self) -> bytes:
        raise PermissionError(13, "Permission denied", str(self))


class _FakeMedia:
    def __init__(
        self, *, size: int | None, error: Exception | None = None, unreadable: bool = False
    ) -> None:
        self._size = size
        self._error = error
        self._unreadable = unreadable
        self.audio_paths: list[Path] = []

    async def extract_audio(
        self, video: Path, dest: Path, *, timeout: float, sample_rate: int, bitrate: str
    ) -> Path | None:
        self.audio_paths.append(dest)
        if self._error is not None:
            raise self._error
        if self._size is None:
            return None
        dest.write_bytes(b"\x00" * self._size)
        return _UnreadablePath(dest) if self._unreadable else dest


class _FakeTranscriptions:
    def __init__(self, output: Any) -> None:
        self._output = output
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if isinstance(self._output, Exception):
            raise self._output
        return self._output


def _client(output: Any) -> Any:
    return SimpleNamespace(audio=SimpleNamespace(transcriptions=_FakeTranscriptions(output)))


class TestAudioTranscriber(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.scratch = ScratchSpace.create(root_dir=self._td.name)

    async def asyncTearDown(self) -> None:
        self.scratch.cleanup()
        self._td.cleanup()

    def _transcriber(
        self, client: Any, media: _FakeMedia, *, audio_cfg: AudioConfig | None = None
    ) -> AudioTranscriber:
        return AudioTranscriber(
            client,
            media,
            self.scratch,
            openai_cfg=OpenAIConfig(transcription_model="stt-x"),
            audio_cfg=audio_cfg or AudioConfig(),
            classifier_cfg=ClassifierConfig(),
            retry=RetryConfig(max_attempts=1),
        )

    async def test_narration_is_returned_as_is(self) -> None:
        text = "welcome, here's my first tip for the best way to book a place"
        client = _client(text + "\n")
        media = _FakeMedia(size=4000)

        out = await self._transcriber(client, media).transcribe(Path("v.mp4"), index=1)

        self.assertEqual(out, text)
        call = client.audio.transcriptions.calls[0]
        self.assertEqual(call["model"], "stt-x")
        self.assertEqual(call["response_format"], "text")
        name, data, mime = call["file"]
        self.assertTrue(name.endswith(".mp3"))
        self.assertEqual(len(data), 4000)
        self.assertEqual(mime, "audio/mpeg")
        self.assertFalse(media.audio_paths[0].exists())

    async def test_music_is_labelled(self) -> None:
        client = _client(SimpleNamespace(text="oh oh baby dance with me tonight girl"))
        out = await self._transcriber(client, _FakeMedia(size=4000)).transcribe(Path("v.mp4"))
        self.assertEqual(
            out, "[Background Music - Not Narration]\noh oh baby dance with me tonight girl"
        )

    async def test_small_audio_is_skipped(self) -> None:
        client = _client("unused")
        media = _FakeMedia(size=200)
        self.assertIsNone(await self._transcriber(client, media).transcribe(Path("v.mp4")))
        self.assertEqual(client.audio.transcriptions.calls, [])
        self.assertFalse(media.audio_paths[0].exists())

    async def test_oversized_audio_is_skipped(self) -> None:
        client = _client("unused")
        media = _FakeMedia(size=3000)
        transcriber = self._transcriber(
            client, media, audio_cfg=AudioConfig(min_audio_bytes=10, max_audio_bytes=2000)
        )
        self.assertIsNone(await transcriber.transcribe(Path("v.mp4")))
        self.assertEqual(client.audio.transcriptions.calls, [])

    async def test_missing_audio_track(self) -> None:
        self.assertIsNone(
            await self._transcriber(_client("x"), _FakeMedia(size=None)).transcribe(Path("v.mp4"))
        )

    async def test_extraction_error(self) -> None:
        media = _FakeMedia(size=4000, error=MediaToolError("ffmpeg not found on PATH"))
        self.assertIsNone(await self._transcriber(_client("x"), media).transcribe(Path("v.mp4")))

    async def test_unreadable_audio_is_skipped(self) -> None:
        client = _client("x")
        media = _FakeMedia(size=4000, unreadable=True)

        out = await self._transcriber(client, media).transcribe(Path("v.mp4"))

        self.assertIsNone(out)
        self.assertEqual(client.audio.transcriptions.calls, [])
        self.assertFalse(media.audio_paths[0].exists())

    async def test_service_failure(self) -> None:
        media = _FakeMedia(size=4000)
        out = await self._transcriber(_client(RuntimeError("503")), media).transcribe(Path("v.mp4"))
        self.assertIsNone(out)
        self.assertFalse(media.audio_paths[0].exists())

    async def test_blank_transcript(self) -> None:
        self.assertIsNone(
            await self._transcriber(_client("   "), _FakeMedia(size=4000)).transcribe(Path("v.mp4"))
        )


if __name__ == "__main__":
    unittest.main()
