"""Classifiers that decide which failures of each remote dependency are worth retrying.

Each classifier returns ``(retryable, retry_after_seconds, reason)`` for
:func:`social_extract.retry.call_with_retries`.
"""

from __future__ import annotations

from typing import Any, Mapping

import httpx
import openai
from apify_client.errors import ApifyApiError

RetryDecision = tuple[bool, float | None, str | None]

_NOT_RETRYABLE: RetryDecision = (False, None, None)


def _status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "statusCode", "status", "http_status"):
        val = getattr(exc, attr, None)
        if val is None:
            continue
        try:
            return int(val)
        except (TypeError, ValueError):
            continue
    return None


def _retry_after(headers: Mapping[str, Any] | None) -> float | None:
    if not headers:
        return None
    raw = headers.get("retry-after") or headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return float(str(raw).strip())
    except ValueError:
        return None


def _is_transient_status(code: int | None, extra: tuple[int, ...] = ()) -> bool:
    if code is None:
        return False
    return code == 429 or code >= 500 or code in extra


def is_retryable_apify_exception(exc: BaseException) -> RetryDecision:
    """Network errors, HTTP 429 and HTTP 5xx from the Apify API."""
    if isinstance(exc, ApifyApiError):
        code = _status_code(exc)
        reason = f"http_{code}" if code is not None else "http_status"
        return _is_transient_status(code), None, reason

    if isinstance(exc, (ConnectionError, TimeoutError, httpx.TransportError)):
        return True, None, "network_error"

    return _NOT_RETRYABLE


def is_retryable_openai_exception(exc: BaseException) -> RetryDecision:
    """Connection and timeout errors, HTTP 408/409/429 and HTTP 5xx from OpenAI."""
    if isinstance(exc, openai.APITimeoutError):
        return True, None, "timeout"

    if isinstance(exc, openai.APIConnectionError):
        return True, None, "connection_error"

    if isinstance(exc, openai.APIStatusError):
        code = _status_code(exc)
        headers = getattr(getattr(exc, "response", None), "headers", None)
        retryable = _is_transient_status(code, extra=(408, 409))
        return retryable, _retry_after(headers) if retryable else None, f"http_{code}"

    return _NOT_RETRYABLE


def is_retryable_http_exception(exc: BaseException) -> RetryDecision:
    """Transport failures and HTTP 429/5xx when downloading media or pages."""
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        retryable = _is_transient_status(code)
        return retryable, _retry_after(exc.response.headers) if retryable else None, f"http_{code}"

    if isinstance(exc, httpx.TimeoutException):
        return True, None, "timeout"

    if isinstance(exc, httpx.TransportError):
        return True, None, "network_error"

    return _NOT_RETRYABLE
