from __future__ import annotations

import math
from pathlib import Path

from .config_schema import FramesConfig
from .errors import MediaToolError
from .fanout import bounded_gather
from .media_tool import MediaUtility
from .run_log import RunLogger


def target_frame_count(duration: float, cfg: FramesConfig | None = None) -> int:
    c = cfg or FramesConfig()
    wanted = math.ceil(max(0.0, duration) / c.seconds_per_frame)
    return min(c.max_frames, max(c.min_frames, wanted))


def frame_timestamps(duration: float, cfg: FramesConfig | None = None) -> list[float]:
    """Evenly spaced sample points strictly inside (0, duration)."""
    count = target_frame_count(duration, cfg)
    interval = duration / (count + 1)
    return [interval * i for i in range(1, count + 1)]


class FrameSampler:
    """Pulls still frames from a video at evenly spaced timestamps."""

    def __init__(
        self,
        media: MediaUtility,
        *,
        cfg: FramesConfig,
        logger: RunLogger | None = None,
    ) -> None:
        self._media = media
        self._cfg = cfg
        self._log = logger or RunLogger.disabled()

    async def duration(self, video: Path) -> float:
        try:
            value = await self._media.probe_duration(video, timeout=self._cfg.probe_timeout_seconds)
        except MediaToolError as e:
            self._log.info("duration_probe_failed", error=str(e))
            value = None
        return value if value else self._cfg.fallback_duration_seconds

    async def sample(self, video: Path, out_dir: Path) -> list[Path]:
        """Extract frames into out_dir and return the ones that succeeded, in time order."""
        duration = await self.duration(video)
        stamps = frame_timestamps(duration, self._cfg)
        self._log.debug("frame_sampling", duration=duration, frames=len(stamps))

        async def _one(pair: tuple[int, float]) -> Path | None:
            idx, ts = pair
            return await self._media.extract_frame(
                video,
                ts,
                out_dir / f"frame_{idx:03d}.jpg",
                width=self._cfg.frame_width,
                timeout=self._cfg.frame_timeout_seconds,
            )

        def _on_error(_: int, pair: tuple[int, float], exc: BaseException) -> None:
            self._log.debug("frame_extract_failed", timestamp=round(pair[1], 2), error=str(exc))

        frames = await bounded_gather(
            list(enumerate(stamps)), _one, limit=self._cfg.max_concurrency, on_error=_on_error
        )
        return [f for f in frames if f is not None]
