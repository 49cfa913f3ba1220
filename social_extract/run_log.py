from __future__ import annotations

import json
import sys
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Mapping, TextIO

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


class _Sink:
    """Shared output target for a logger and all loggers bound from it."""

    def __init__(self, fp: TextIO | None, *, owned: bool) -> None:
        self._fp = fp
        self._owned = owned
        self._lock = Lock()

    def write(self, line: str) -> None:
        with self._lock:
            if self._fp is None:
                return
            self._fp.write(line + "\n")
            self._fp.flush()

    def close(self) -> None:
        with self._lock:
            if self._fp is not None and self._owned:
                try:
                    self._fp.flush()
                finally:
                    self._fp.close()
            self._fp = None


class RunLogger:
    """
    JSON-lines event logger shared by the CLI and the extraction pipeline.

    Each line is one JSON object: ts, level, event, session_id, any bound context
    (call_id, url, platform, ...) and an optional data payload.
    """

    def __init__(
        self,
        sink: _Sink,
        *,
        session_id: str | None = None,
        context: Mapping[str, Any] | None = None,
        min_level: str = "INFO",
    ) -> None:
        self._sink = sink
        self._session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._context = dict(context or {})
        self._min_level = _LEVELS.get(min_level.strip().upper(), _LEVELS["INFO"])

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        overwrite: bool = True,
        session_id: str | None = None,
        min_level: str = "INFO",
    ) -> "RunLogger":
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        fp = p.open("w" if overwrite else "a", encoding="utf-8", newline="\n")
        return cls(_Sink(fp, owned=True), session_id=session_id, min_level=min_level)

    @classmethod
    def to_stream(
        cls,
        stream: TextIO | None = None,
        *,
        session_id: str | None = None,
        min_level: str = "INFO",
    ) -> "RunLogger":
        return cls(
            _Sink(stream if stream is not None else sys.stderr, owned=False),
            session_id=session_id,
            min_level=min_level,
        )

    @classmethod
    def disabled(cls) -> "RunLogger":
        return cls(_Sink(None, owned=False))

    @property
    def context(self) -> dict[str, Any]:
        return dict(self._context)

    def bind(self, **context: Any) -> "RunLogger":
        """Return a logger writing to the same sink with extra context on every record."""
        merged = dict(self._context)
        merged.update({k: v for k, v in context.items() if v is not None})
        child = RunLogger(self._sink, session_id=self._session_id, context=merged)
        child._min_level = self._min_level
        return child

    def close(self) -> None:
        self._sink.close()

    def __enter__(self) -> "RunLogger":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def debug(self, event: str, **data: Any) -> None:
        self.log("DEBUG", event, **data)

    def info(self, event: str, **data: Any) -> None:
        self.log("INFO", event, **data)

    def warning(self, event: str, **data: Any) -> None:
        self.log("WARN", event, **data)

    def error(self, event: str, **data: Any) -> None:
        self.log("ERROR", event, **data)

    def exception(self, event: str, *, exc: BaseException, **data: Any) -> None:
        err = {
            "type": type(exc).__name__,
            "message": _truncate(str(exc), limit=2000),
            "traceback": _truncate(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                limit=12000,
            ),
        }
        self.log("ERROR", event, error=err, **data)

    def log(self, level: str, event: str, **data: Any) -> None:
        lvl = (level or "").strip().upper() or "INFO"
        if _LEVELS.get(lvl, _LEVELS["INFO"]) < self._min_level:
            return

        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": lvl,
            "event": (event or "").strip() or "event",
            "session_id": self._session_id,
        }
        record.update(self._context)
        if data:
            record["data"] = data

        self._sink.write(
            json.dumps(
                record,
                ensure_ascii=False,
                sort_keys=True,
                separators=(",", ":"),
                default=str,
            )
        )
