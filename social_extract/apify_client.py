from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from apify_client import ApifyClientAsync
from apify_client.errors import ApifyApiError

from .config_schema import ApifyConfig
from .errors import ApifyError
from .retry import OnRetryFn, RetryConfig, SleepFn, call_with_retries
from .retry_policy import is_retryable_apify_exception

_DEFAULT_APIFY_RETRY = RetryConfig(
    max_attempts=4,
    base_delay_seconds=0.5,
    max_delay_seconds=10.0,
    jitter_ratio=0.0,
    retry_after_cap_seconds=0.0,
)


@dataclass(frozen=True)
class ActorRunRef:
    actor_id: str
    run_id: str
    default_dataset_id: str


def _run_field(result: Any, *names: str) -> str:
    for name in names:
        if isinstance(result, dict):
            val = result.get(name)
        else:
            val = getattr(result, name, None)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


class ApifyPostScraper:
    """
    Thin wrapper around Apify's maintained post scraper Actors.

    Runs one Actor per post URL and returns the raw dataset items; mapping items to
    posts lives in normalize.py.
    """

    def __init__(
        self,
        token: str,
        *,
        client: ApifyClientAsync | None = None,
        retry: RetryConfig | None = None,
        on_retry: OnRetryFn | None = None,
        sleep_fn: SleepFn | None = None,
    ) -> None:
        self._retry = retry or _DEFAULT_APIFY_RETRY
        self._on_retry = on_retry
        self._sleep_fn = sleep_fn

        if client is not None:
            self._client = client
        else:
            # Client-level retries are disabled so the shared policy applies uniformly.
            self._client = ApifyClientAsync(token=token, max_retries=0)

    async def run_actor(
        self,
        actor_id: str,
        run_input: dict[str, Any],
        *,
        timeout_secs: int | None = None,
    ) -> ActorRunRef:
        actor = (actor_id or "").strip()
        if not actor:
            raise ApifyError("actor_id must be a non-empty string")

        async def _do_call() -> Any:
            return await self._client.actor(actor).call(
                run_input=run_input,
                timeout_secs=timeout_secs,
            )

        try:
            result = await call_with_retries(
                _do_call,
                cfg=self._retry,
                is_retryable=is_retryable_apify_exception,
                operation=f"apify.actor.call:{actor}",
                on_retry=self._on_retry,
                sleep_fn=self._sleep_fn,
            )
        except ApifyApiError as e:
            raise ApifyError(f"Apify Actor call failed ({actor}): {e}") from e
        except Exception as e:
            raise ApifyError(f"Unexpected error while calling Apify Actor ({actor}): {e}") from e

        if result is None:
            raise ApifyError(f"Apify Actor run failed ({actor})")

        run_id = _run_field(result, "id")
        dataset_id = _run_field(result, "defaultDatasetId", "default_dataset_id")
        if not run_id or not dataset_id:
            raise ApifyError(
                f"Apify Actor run response missing run id or default dataset id: {result}"
            )

        status = _run_field(result, "status").upper()
        if status and status not in ("SUCCEEDED", "RUNNING", "READY"):
            raise ApifyError(f"Apify Actor run {run_id} ended with status {status}")

        return ActorRunRef(actor_id=actor, run_id=run_id, default_dataset_id=dataset_id)

    async def fetch_dataset_items(
        self,
        dataset_id: str,
        *,
        limit: int | None = None,
        clean: bool = True,
    ) -> list[dict[str, Any]]:
        ds = (dataset_id or "").strip()
        if not ds:
            raise ApifyError("dataset_id must be a non-empty string")

        async def _do_fetch() -> list[dict[str, Any]]:
            page = await self._client.dataset(ds).list_items(limit=limit, clean=clean)
            return list(page.items)

        try:
            return await call_with_retries(
                _do_fetch,
                cfg=self._retry,
                is_retryable=is_retryable_apify_exception,
                operation=f"apify.dataset.list_items:{ds}",
                on_retry=self._on_retry,
                sleep_fn=self._sleep_fn,
            )
        except ApifyApiError as e:
            raise ApifyError(f"Failed to read dataset items ({ds}): {e}") from e
        except Exception as e:
            raise ApifyError(f"Unexpected error while reading dataset ({ds}): {e}") from e

    async def scrape_instagram_post(self, url: str, *, apify: ApifyConfig) -> list[dict[str, Any]]:
        run_input: dict[str, Any] = {
            "directUrls": [url],
            "resultsType": "posts",
            "resultsLimit": apify.dataset_limit,
            "addParentData": False,
        }
        run = await self.run_actor(
            apify.instagram_actor, run_input, timeout_secs=apify.run_timeout_secs
        )
        return await self.fetch_dataset_items(run.default_dataset_id, limit=apify.dataset_limit)

    async def scrape_tiktok_post(self, url: str, *, apify: ApifyConfig) -> list[dict[str, Any]]:
        run_input: dict[str, Any] = {
            "postURLs": [url],
            "resultsPerPage": apify.dataset_limit,
            "shouldDownloadVideos": True,
            "shouldDownloadSlideshowImages": True,
            "shouldDownloadCovers": True,
        }
        run = await self.run_actor(
            apify.tiktok_actor, run_input, timeout_secs=apify.run_timeout_secs
        )
        return await self.fetch_dataset_items(run.default_dataset_id, limit=apify.dataset_limit)
