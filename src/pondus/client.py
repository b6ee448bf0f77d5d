"""Cached GitHub organization client.

Combines the fetcher with a cache store, an in-flight registry and an ETag
table. Single resources are revalidated with conditional requests; list
resources are cached whole (pages are never cached individually).
"""

import logging
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional
from urllib.parse import urlencode

from pondus.cache import (
    CacheStore,
    CachedFetchOptions,
    CachedFetchResult,
    InFlightRegistry,
    cached_fetch,
    create_cache,
)
from pondus.concurrency import batch_process
from pondus.config import Settings
from pondus.dates import to_iso
from pondus.errors import GitHubError
from pondus.fetcher import GitHubFetcher, Params, clean_params
from pondus.models import (
    ActionsSettings,
    Commit,
    Issue,
    Member,
    Organization,
    OrgSecret,
    PullRequest,
    Repository,
    Runner,
    Team,
    Timeframe,
    Webhook,
)

logger = logging.getLogger(__name__)

ORG_TTL = 10 * 60.0


# ── Parsing ───────────────────────────────────────────────────────────────

def parse_commit(item: dict) -> Commit:
    detail = item.get("commit") or {}
    author_info = detail.get("author") or {}
    author = item.get("author") or {}
    committer = item.get("committer") or {}
    return Commit(
        sha=item["sha"],
        message=detail.get("message", ""),
        author_name=author_info.get("name") or "Unknown",
        author_email=author_info.get("email") or "",
        author_login=author.get("login"),
        author_type=author.get("type"),
        committer_login=committer.get("login"),
        committer_type=committer.get("type"),
        date=author_info.get("date"),
        url=item.get("html_url", ""),
    )


def parse_pull_request(item: dict) -> PullRequest:
    user = item.get("user") or {}
    return PullRequest(
        number=item["number"],
        title=item.get("title", ""),
        author=user.get("login", "ghost"),
        author_type=user.get("type"),
        state=item.get("state", "open"),
        created_at=item["created_at"],
        merged_at=item.get("merged_at"),
        closed_at=item.get("closed_at"),
        url=item.get("html_url", ""),
        labels=[label["name"] for label in item.get("labels", [])],
    )


def parse_issue(item: dict) -> Issue:
    user = item.get("user") or {}
    return Issue(
        number=item["number"],
        title=item.get("title", ""),
        author=user.get("login", "ghost"),
        author_type=user.get("type"),
        state=item.get("state", "open"),
        created_at=item["created_at"],
        closed_at=item.get("closed_at"),
        url=item.get("html_url", ""),
        labels=[label["name"] for label in item.get("labels", [])],
        is_pull_request="pull_request" in item,
    )


class GitHubClient:
    """Organization-scoped GitHub API access with caching.

    The cache store and in-flight registry are injected so tests (and
    callers sharing state between clients) control their lifetime.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        fetcher: Optional[GitHubFetcher] = None,
        cache: Optional[CacheStore] = None,
        registry: Optional[InFlightRegistry] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.fetcher = fetcher or GitHubFetcher(
            token=self.settings.github_token,
            base_url=self.settings.api_url,
            timeout=self.settings.timeout,
            max_retries=self.settings.max_retries,
        )
        if cache is None:
            cache = create_cache(
                self.settings.cache_type,
                cache_dir=self.settings.cache_dir,
                ttl=self.settings.cache_ttl,
                stale_while_revalidate=self.settings.stale_while_revalidate,
                max_entries=self.settings.max_cache_entries,
            )
        self.cache = cache
        self.registry = registry if registry is not None else InFlightRegistry()
        self._etags: dict[str, str] = {}

    async def close(self) -> None:
        await self.fetcher.close()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # ── Cache plumbing ────────────────────────────────────────────────────

    def cache_key(self, endpoint: str, params: Optional[Params] = None) -> str:
        query = urlencode(sorted(clean_params(params).items()))
        url = f"{self.fetcher.base_url}{endpoint}"
        return f"github:{url}?{query}" if query else f"github:{url}"

    def etag_for(self, endpoint: str, params: Optional[Params] = None) -> Optional[str]:
        return self._etags.get(self.cache_key(endpoint, params))

    async def fetch_cached(
        self,
        endpoint: str,
        params: Optional[Params] = None,
        method: str = "GET",
        json: Optional[Any] = None,
        ttl: Optional[float] = None,
        skip_cache: bool = False,
        force_revalidate: bool = False,
        use_etag: bool = True,
    ) -> CachedFetchResult[Any]:
        """Fetch one resource, revalidating with ``If-None-Match`` when possible."""
        if method != "GET":
            resp = await self.fetcher.request(endpoint, method=method, json=json, params=params)
            return CachedFetchResult(data=resp.data, from_cache=False, stale=False, etag=resp.etag)

        ttl = self.cache.options.ttl if ttl is None else ttl
        key = self.cache_key(endpoint, params)

        if skip_cache:
            resp = await self.registry.fetch(
                f"{key}:nocache", lambda: self.fetcher.request(endpoint, params=params)
            )
            return CachedFetchResult(data=resp.data, from_cache=False, stale=False, etag=resp.etag)

        entry = await self.cache.peek(key)
        if entry is not None and not entry.is_expired(self.cache.clock()) and not force_revalidate:
            await self.cache.get(key)
            logger.debug("cache hit: %s", key)
            return CachedFetchResult(data=entry.data, from_cache=True, stale=False, etag=entry.etag)

        # An ETag is only worth sending while the entry it validates is still held
        etag = None
        if use_etag and entry is not None:
            etag = self._etags.get(key) or entry.etag
        return await self.registry.fetch(
            key, lambda: self._revalidate(key, endpoint, params, ttl, etag)
        )

    async def _revalidate(
        self,
        key: str,
        endpoint: str,
        params: Optional[Params],
        ttl: float,
        etag: Optional[str],
    ) -> CachedFetchResult[Any]:
        resp = await self.fetcher.request(endpoint, params=params, etag=etag)

        if resp.not_modified:
            cached = await self.cache.peek(key)
            if cached is not None:
                await self.cache.set(key, cached.refreshed(self.cache.clock() + ttl))
                logger.debug("not modified: %s", key)
                return CachedFetchResult(
                    data=cached.data, from_cache=True, stale=False, not_modified=True, etag=etag
                )
            # The entry was evicted while its ETag survived; ask again in full.
            resp = await self.fetcher.request(endpoint, params=params)

        if resp.etag:
            self._etags[key] = resp.etag
        await self.cache.set(key, self.cache.create_entry(resp.data, etag=resp.etag, ttl=ttl))
        return CachedFetchResult(data=resp.data, from_cache=False, stale=False, etag=resp.etag)

    async def _cached(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
        skip_cache: bool = False,
    ) -> CachedFetchResult[Any]:
        options = CachedFetchOptions(
            ttl=self.cache.options.ttl if ttl is None else ttl,
            stale_while_revalidate=self.settings.stale_while_revalidate,
            skip_cache=skip_cache,
        )
        return await cached_fetch(self.cache, key, fetcher, options, self.registry)

    async def clear_cache(self) -> None:
        """Drop cached data and remembered ETags."""
        self._etags.clear()
        await self.cache.clear()

    # ── Organization ──────────────────────────────────────────────────────

    async def get_organization(self, org: str, skip_cache: bool = False) -> Organization:
        result = await self.fetch_cached(f"/orgs/{org}", ttl=ORG_TTL, skip_cache=skip_cache)
        return Organization.model_validate(result.data)

    async def get_org_members_list(
        self, org: str, role: Optional[str] = None, skip_cache: bool = False
    ) -> list[Member]:
        """Members, optionally filtered by role (``admin`` or ``member``)."""
        params = {"role": role} if role and role != "all" else None
        result = await self._cached(
            f"members:{org}:{role or 'all'}",
            lambda: self.fetcher.collect(f"/orgs/{org}/members", params),
            ttl=ORG_TTL,
            skip_cache=skip_cache,
        )
        return [Member.model_validate(m) for m in result.data]

    async def get_org_teams_list(self, org: str, skip_cache: bool = False) -> list[Team]:
        result = await self._cached(
            f"teams:{org}",
            lambda: self.fetcher.collect(f"/orgs/{org}/teams"),
            ttl=ORG_TTL,
            skip_cache=skip_cache,
        )
        return [Team.model_validate(t) for t in result.data]

    async def get_org_repos_list(
        self, org: str, max_pages: Optional[int] = None, skip_cache: bool = False
    ) -> list[Repository]:
        """All repositories, most recently pushed first."""
        result = await self._cached(
            f"repos:{org}:{max_pages or 'all'}",
            lambda: self.fetcher.collect(
                f"/orgs/{org}/repos", {"type": "all", "sort": "pushed"}, max_pages=max_pages
            ),
            skip_cache=skip_cache,
        )
        return [Repository.model_validate(r) for r in result.data]

    async def get_user_orgs(self) -> list[dict]:
        result = await self._cached("user:orgs", lambda: self.fetcher.collect("/user/orgs"))
        return result.data

    # ── Settings (admin access required) ──────────────────────────────────

    async def get_org_webhooks(self, org: str) -> list[Webhook]:
        result = await self.fetch_cached(f"/orgs/{org}/hooks")
        return [Webhook.model_validate(h) for h in result.data]

    async def get_actions_settings(self, org: str) -> ActionsSettings:
        result = await self.fetch_cached(f"/orgs/{org}/actions/permissions")
        return ActionsSettings.model_validate(result.data)

    async def get_org_runners(self, org: str) -> list[Runner]:
        result = await self.fetch_cached(f"/orgs/{org}/actions/runners")
        return [Runner.model_validate(r) for r in result.data.get("runners", [])]

    async def get_org_secrets(self, org: str) -> list[OrgSecret]:
        """Secret names and metadata; values are never exposed by the API."""
        result = await self.fetch_cached(f"/orgs/{org}/actions/secrets")
        return [OrgSecret.model_validate(s) for s in result.data.get("secrets", [])]

    # ── Repository activity (lazy) ────────────────────────────────────────

    async def get_repo_commits(
        self,
        repo: str,
        timeframe: Optional[Timeframe] = None,
        author: Optional[str] = None,
        max_pages: Optional[int] = None,
    ) -> AsyncIterator[Commit]:
        params: Params = {"author": author}
        if timeframe is not None:
            params["since"] = to_iso(timeframe.since)
            params["until"] = to_iso(timeframe.until)
        async for item in self.fetcher.paginate(f"/repos/{repo}/commits", params, max_pages=max_pages):
            yield parse_commit(item)

    async def get_repo_pulls(
        self, repo: str, state: str = "all", max_pages: Optional[int] = None
    ) -> AsyncIterator[PullRequest]:
        """Pull requests, newest first."""
        params = {"state": state, "sort": "created", "direction": "desc"}
        async for item in self.fetcher.paginate(f"/repos/{repo}/pulls", params, max_pages=max_pages):
            yield parse_pull_request(item)

    async def get_repo_issues(
        self,
        repo: str,
        since: Optional[datetime] = None,
        state: str = "all",
        max_pages: Optional[int] = None,
    ) -> AsyncIterator[Issue]:
        """Issues updated since ``since``; pull requests are included and marked."""
        params = {"state": state, "since": to_iso(since) if since else None}
        async for item in self.fetcher.paginate(f"/repos/{repo}/issues", params, max_pages=max_pages):
            yield parse_issue(item)

    # ── Repository activity (cached, windowed) ────────────────────────────

    async def get_repo_commits_list(
        self, repo: str, timeframe: Timeframe, skip_cache: bool = False
    ) -> list[Commit]:
        key = f"commits:{repo}:{to_iso(timeframe.since)}:{to_iso(timeframe.until)}"

        async def fetch() -> list[dict]:
            params = {"since": to_iso(timeframe.since), "until": to_iso(timeframe.until)}
            return await self.fetcher.collect(f"/repos/{repo}/commits", params)

        result = await self._cached(key, fetch, skip_cache=skip_cache)
        return [parse_commit(item) for item in result.data]

    async def get_repo_pulls_list(
        self, repo: str, timeframe: Timeframe, skip_cache: bool = False
    ) -> list[PullRequest]:
        """Pull requests created inside ``timeframe``."""
        key = f"pulls:{repo}:{to_iso(timeframe.since)}:{to_iso(timeframe.until)}"

        async def fetch() -> list[dict]:
            items: list[dict] = []
            params = {"state": "all", "sort": "created", "direction": "desc"}
            async for item in self.fetcher.paginate(f"/repos/{repo}/pulls", params):
                created = parse_pull_request(item).created_at
                if created >= timeframe.until:
                    continue
                if created < timeframe.since:
                    break  # Sorted desc by created, nothing older can match
                items.append(item)
            return items

        result = await self._cached(key, fetch, skip_cache=skip_cache)
        return [parse_pull_request(item) for item in result.data]

    async def get_repo_issues_list(
        self, repo: str, timeframe: Timeframe, skip_cache: bool = False
    ) -> list[Issue]:
        """Issues (and PR-issues, marked) created inside ``timeframe``."""
        key = f"issues:{repo}:{to_iso(timeframe.since)}:{to_iso(timeframe.until)}"

        async def fetch() -> list[dict]:
            params = {"state": "all", "since": to_iso(timeframe.since)}
            items = await self.fetcher.collect(f"/repos/{repo}/issues", params)
            return [i for i in items if timeframe.contains(parse_issue(i).created_at)]

        result = await self._cached(key, fetch, skip_cache=skip_cache)
        return [parse_issue(item) for item in result.data]

    async def get_commits_for_repos(
        self,
        repos: Iterable[Repository],
        timeframe: Timeframe,
        concurrency: Optional[int] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> dict[str, list[Commit]]:
        """Commits per repository; empty or missing repositories yield ``[]``."""
        results: dict[str, list[Commit]] = {}

        async def process(repo: Repository) -> None:
            try:
                results[repo.full_name] = await self.get_repo_commits_list(repo.full_name, timeframe)
            except GitHubError as e:
                # 409: empty repository, 404: gone or hidden
                if e.status not in (404, 409):
                    raise
                results[repo.full_name] = []

        await batch_process(
            list(repos),
            process,
            concurrency=concurrency or self.settings.concurrency,
            on_progress=on_progress,
        )
        return results
