"""GitHub REST transport: single requests and lazy pagination."""

import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Optional

import httpx
from pydantic import BaseModel

from pondus.auth import detect_auth
from pondus.concurrency import with_retry
from pondus.errors import AuthError, GitHubError, RateLimitError

logger = logging.getLogger(__name__)

BASE_URL = "https://api.github.com"
DEFAULT_PER_PAGE = 100
LOW_RATE_LIMIT = 10

Params = dict[str, Any]


class RateLimit(BaseModel):
    """Last rate-limit headers seen."""

    remaining: Optional[int] = None
    reset_at: Optional[datetime] = None


class FetchResponse(BaseModel):
    """Parsed body plus the metadata callers need for caching."""

    data: Any = None
    status: int
    etag: Optional[str] = None
    not_modified: bool = False


def _default_token_provider() -> Optional[str]:
    return detect_auth().token


def clean_params(params: Optional[Params]) -> dict[str, str]:
    """Drop ``None`` values and stringify the rest."""
    return {k: str(v) for k, v in (params or {}).items() if v is not None}


def _reset_time(value: str) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class GitHubFetcher:
    """Issues authenticated requests against the GitHub REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
        max_retries: int = 0,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limit = RateLimit()
        self._token_provider = token_provider or _default_token_provider
        self._client: Optional[httpx.AsyncClient] = None

    # ── HTTP plumbing ─────────────────────────────────────────────────────

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _resolve_token(self) -> str:
        if not self.token:
            self.token = self._token_provider()
        if not self.token:
            raise AuthError(
                "No GitHub authentication found. Set GITHUB_TOKEN or run `gh auth login`."
            )
        return self.token

    async def _client_instance(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubFetcher":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def _track_rate_limit(self, resp: httpx.Response) -> None:
        remaining = resp.headers.get("x-ratelimit-remaining")
        reset = resp.headers.get("x-ratelimit-reset")
        try:
            if remaining is not None:
                self.rate_limit = RateLimit(
                    remaining=int(remaining),
                    reset_at=_reset_time(reset) if reset else None,
                )
        except ValueError:
            return
        if self.rate_limit.remaining is not None and self.rate_limit.remaining < LOW_RATE_LIMIT:
            logger.warning("GitHub rate limit low: %d remaining", self.rate_limit.remaining)

    async def request(
        self,
        path: str,
        method: str = "GET",
        json: Optional[Any] = None,
        params: Optional[Params] = None,
        etag: Optional[str] = None,
    ) -> FetchResponse:
        """Perform one request; non-2xx responses raise typed errors.

        A 304 (only possible when ``etag`` is sent) comes back as a
        successful response with ``not_modified`` set and no body.
        Retryable failures are retried up to ``max_retries`` times.
        """
        if self.max_retries > 0:
            return await with_retry(
                lambda: self._send(path, method, json, params, etag),
                max_retries=self.max_retries,
            )
        return await self._send(path, method, json, params, etag)

    async def _send(
        self,
        path: str,
        method: str,
        json: Optional[Any],
        params: Optional[Params],
        etag: Optional[str],
    ) -> FetchResponse:
        token = self._resolve_token()
        headers = {"Authorization": f"Bearer {token}"}
        if etag:
            headers["If-None-Match"] = etag

        client = await self._client_instance()
        resp = await client.request(
            method,
            path,
            params=clean_params(params),
            json=json,
            headers=headers,
        )
        self._track_rate_limit(resp)

        if resp.status_code == 304:
            return FetchResponse(status=304, etag=resp.headers.get("etag") or etag, not_modified=True)

        if not resp.is_success:
            reset = resp.headers.get("x-ratelimit-reset")
            if resp.status_code == 403 and reset:
                raise RateLimitError(_reset_time(reset), resp.text)
            raise GitHubError(resp.status_code, resp.reason_phrase, resp.text)

        data = resp.json() if resp.content else None
        return FetchResponse(data=data, status=resp.status_code, etag=resp.headers.get("etag"))

    # ── Pagination ────────────────────────────────────────────────────────

    async def paginate(
        self,
        path: str,
        params: Optional[Params] = None,
        per_page: int = DEFAULT_PER_PAGE,
        max_pages: Optional[int] = None,
    ) -> AsyncIterator[Any]:
        """Yield items of a paged collection, fetching each page on demand."""
        params = dict(params or {})
        page = 1
        while max_pages is None or page <= max_pages:
            resp = await self.request(path, params={**params, "page": page, "per_page": per_page})
            data = resp.data or []
            if not data:
                break
            for item in data:
                yield item
            if len(data) < per_page:
                break
            page += 1

    async def collect(
        self,
        path: str,
        params: Optional[Params] = None,
        per_page: int = DEFAULT_PER_PAGE,
        max_pages: Optional[int] = None,
    ) -> list[Any]:
        """Fetch all pages from a paginated endpoint into one list."""
        return [item async for item in self.paginate(path, params, per_page, max_pages)]
