from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from .errors import MediaToolError

_NO_STREAM_MARKERS = (
    "does not contain any stream",
    "matches no streams",
    "output file is empty",
)


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(args: Sequence[str], *, timeout: float) -> CommandResult:
    """
    Run an external binary without blocking the event loop.

    Raises MediaToolError when the binary is missing or the timeout expires; a
    non-zero exit is returned to the caller in CommandResult.
    """
    cmd = [str(a) for a in args]
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise MediaToolError(f"{cmd[0]} not found on PATH") from e
    except OSError as e:
        raise MediaToolError(f"Failed to start {cmd[0]}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        raise MediaToolError(f"{cmd[0]} timed out after {timeout:.0f}s") from e

    return CommandResult(
        returncode=int(process.returncode or 0),
        stdout=stdout.decode("utf-8", errors="ignore"),
        stderr=stderr.decode("utf-8", errors="ignore"),
    )


class CommandRunner(Protocol):
    async def __call__(self, args: Sequence[str], *, timeout: float) -> CommandResult: ...


class MediaUtility(Protocol):
    """Audio/frame operations the pipeline needs from a media toolkit."""

    async def extract_audio(
        self, video: Path, dest: Path, *, timeout: float, sample_rate: int, bitrate: str
    ) -> Path | None: ...

    async def probe_duration(self, video: Path, *, timeout: float) -> float | None: ...

    async def extract_frame(
        self, video: Path, timestamp: float, dest: Path, *, width: int, timeout: float
    ) -> Path | None: ...


class FFmpegMediaUtility:
    """MediaUtility backed by the ffmpeg and ffprobe binaries."""

    def __init__(
        self,
        *,
        ffmpeg: str = "ffmpeg",
        ffprobe: str = "ffprobe",
        runner: CommandRunner | None = None,
    ) -> None:
        self._ffmpeg = ffmpeg
        self._ffprobe = ffprobe
        self._run: CommandRunner = runner or run_command

    async def extract_audio(
        self,
        video: Path,
        dest: Path,
        *,
        timeout: float,
        sample_rate: int = 16000,
        bitrate: str = "64k",
    ) -> Path | None:
        """Encode the audio track as mono MP3. Returns None when the input has no audio."""
        result = await self._run(
            [
                self._ffmpeg,
                "-hide_banner",
                "-loglevel", "error",
                "-i", str(video),
                "-vn",
                "-ac", "1",
                "-ar", str(sample_rate),
                "-acodec", "libmp3lame",
                "-b:a", bitrate,
                "-y", str(dest),
            ],
            timeout=timeout,
        )

        if not result.ok:
            stderr = result.stderr.casefold()
            if any(marker in stderr for marker in _NO_STREAM_MARKERS):
                return None
            raise MediaToolError(f"ffmpeg audio extraction failed: {result.stderr.strip()[:500]}")

        return dest if dest.exists() else None

    async def probe_duration(self, video: Path, *, timeout: float) -> float | None:
        result = await self._run(
            [
                self._ffprobe,
                "-v", "error",
                "-show_entries", "format=duration",
                "-of", "default=noprint_wrappers=1:nokey=1",
                str(video),
            ],
            timeout=timeout,
        )
        if not result.ok:
            return None
        try:
            duration = float(result.stdout.strip())
        except ValueError:
            return None
        return duration if duration > 0 else None

    async def extract_frame(
        self,
        video: Path,
        timestamp: float,
        dest: Path,
        *,
        width: int,
        timeout: float,
    ) -> Path | None:
        result = await self._run(
            [
                self._ffmpeg,
                "-hide_banner",
                "-loglevel", "error",
                "-ss", f"{timestamp:.2f}",
                "-i", str(video),
                "-frames:v", "1",
                "-q:v", "2",
                "-vf", f"scale={width}:-1",
                "-y", str(dest),
            ],
            timeout=timeout,
        )
        if not result.ok:
            raise MediaToolError(
                f"ffmpeg frame extraction at {timestamp:.2f}s failed: {result.stderr.strip()[:300]}"
            )
        return dest if dest.exists() else None
