"""Per-author commit, pull request and issue statistics for an organization."""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

from pydantic import BaseModel, Field

from pondus.client import GitHubClient
from pondus.concurrency import batch_process
from pondus.errors import GitHubError, RateLimitError
from pondus.models import (
    Commit,
    CommitStats,
    Issue,
    IssueStats,
    OrgStats,
    PullRequest,
    PullRequestStats,
    RankedStats,
    Repository,
    Timeframe,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
StatsT = TypeVar("StatsT", CommitStats, PullRequestStats, IssueStats)

# Statuses meaning "this repository is not readable for us": no access,
# gone, or empty (409 on the commits endpoint).
SKIPPABLE_STATUSES = frozenset({403, 404, 409})

ProgressCallback = Callable[[int, int], None]
SkipCallback = Callable[[Repository, GitHubError], None]


class StatsOptions(BaseModel):
    """What to aggregate and how wide to fan out."""

    org: str
    since: datetime
    until: datetime
    members_only: bool = True
    include_bots: bool = False
    max_repos: Optional[int] = Field(default=10, ge=1)
    top: int = Field(default=10, ge=1)
    concurrency: int = Field(default=10, ge=1)

    @property
    def timeframe(self) -> Timeframe:
        return Timeframe(since=self.since, until=self.until)


def is_bot(login: Optional[str], account_type: Optional[str]) -> bool:
    """GitHub App accounts have type ``Bot`` and a ``[bot]`` login suffix."""
    return account_type == "Bot" or bool(login and login.endswith("[bot]"))


def _keep(login: str, account_type: Optional[str], include_bots: bool, members: Optional[set[str]]) -> bool:
    if not include_bots and is_bot(login, account_type):
        return False
    if members is not None and login not in members:
        return False
    return True


def rank(stats: Sequence[StatsT], top: int = 10) -> RankedStats:
    """Sort descending by count, keep ``top``, and bucket the rest.

    Python's sort is stable, so authors with equal counts keep the order in
    which they were first seen.
    """
    ordered = sorted(stats, key=lambda s: s.count, reverse=True)
    head = ordered[:top]
    total = sum(s.count for s in ordered)
    return RankedStats(top=list(head), other=total - sum(s.count for s in head), total=total)


# ── Reducers ──────────────────────────────────────────────────────────────

def count_commits(
    commits: Iterable[Commit],
    include_bots: bool = False,
    members: Optional[set[str]] = None,
) -> list[CommitStats]:
    """Commits per account, sorted by count (first-seen order on ties)."""
    by_author: dict[str, CommitStats] = {}
    for c in commits:
        login = c.login
        if not login or not _keep(login, c.login_type, include_bots, members):
            continue
        s = by_author.setdefault(login, CommitStats(author=login))
        s.count += 1
    return sorted(by_author.values(), key=lambda s: s.count, reverse=True)


def count_pull_requests(
    prs: Iterable[PullRequest],
    include_bots: bool = False,
    members: Optional[set[str]] = None,
) -> list[PullRequestStats]:
    by_author: dict[str, PullRequestStats] = {}
    for pr in prs:
        if not _keep(pr.author, pr.author_type, include_bots, members):
            continue
        s = by_author.setdefault(pr.author, PullRequestStats(author=pr.author))
        s.count += 1
        if pr.merged_at:
            s.merged += 1
    return sorted(by_author.values(), key=lambda s: s.count, reverse=True)


def count_issues(
    issues: Iterable[Issue],
    include_bots: bool = False,
    members: Optional[set[str]] = None,
) -> list[IssueStats]:
    """Issues opened per author; pull requests listed as issues are ignored."""
    by_author: dict[str, IssueStats] = {}
    for issue in issues:
        if issue.is_pull_request:
            continue
        if not _keep(issue.author, issue.author_type, include_bots, members):
            continue
        s = by_author.setdefault(issue.author, IssueStats(author=issue.author))
        s.count += 1
        if issue.state == "closed" or issue.closed_at:
            s.closed += 1
    return sorted(by_author.values(), key=lambda s: s.count, reverse=True)


# ── Fetching ──────────────────────────────────────────────────────────────

async def select_repositories(client: GitHubClient, options: StatsOptions) -> list[Repository]:
    """The ``max_repos`` most recently pushed repositories (all if None)."""
    repos = await client.get_org_repos_list(options.org)
    floor = datetime.min.replace(tzinfo=timezone.utc)
    ordered = sorted(repos, key=lambda r: r.pushed_at or floor, reverse=True)
    return ordered[:options.max_repos] if options.max_repos else ordered


async def member_logins(client: GitHubClient, options: StatsOptions) -> Optional[set[str]]:
    if not options.members_only:
        return None
    return {m.login for m in await client.get_org_members_list(options.org)}


async def _fetch_or_skip(
    repo: Repository,
    fetch: Callable[[str], Awaitable[list[T]]],
    on_skip: Optional[SkipCallback] = None,
) -> list[T]:
    try:
        return await fetch(repo.full_name)
    except RateLimitError:
        raise
    except GitHubError as e:
        if e.status not in SKIPPABLE_STATUSES:
            raise
        logger.debug("skipping %s: %s", repo.full_name, e.status)
        if on_skip:
            on_skip(repo, e)
        return []


async def fetch_per_repo(
    repos: Sequence[Repository],
    fetch: Callable[[str], Awaitable[list[T]]],
    concurrency: int = 10,
    on_progress: Optional[ProgressCallback] = None,
    on_skip: Optional[SkipCallback] = None,
) -> list[T]:
    """Run ``fetch`` for every repository and flatten the results.

    Repositories we cannot read are skipped and reported through
    ``on_skip``; rate limits and other errors propagate.
    """
    async def process(repo: Repository) -> list[T]:
        return await _fetch_or_skip(repo, fetch, on_skip)

    per_repo = await batch_process(repos, process, concurrency=concurrency, on_progress=on_progress)
    return [item for items in per_repo for item in items]


async def get_commit_stats(
    client: GitHubClient,
    options: StatsOptions,
    on_progress: Optional[ProgressCallback] = None,
    on_skip: Optional[SkipCallback] = None,
) -> list[CommitStats]:
    """Commit counts per author across the selected repositories."""
    members = await member_logins(client, options)
    repos = await select_repositories(client, options)
    timeframe = options.timeframe
    commits = await fetch_per_repo(
        repos,
        lambda name: client.get_repo_commits_list(name, timeframe),
        options.concurrency,
        on_progress,
        on_skip,
    )
    return count_commits(commits, options.include_bots, members)


async def get_pull_request_stats(
    client: GitHubClient,
    options: StatsOptions,
    on_progress: Optional[ProgressCallback] = None,
    on_skip: Optional[SkipCallback] = None,
) -> list[PullRequestStats]:
    """Pull requests opened (and merged) per author."""
    members = await member_logins(client, options)
    repos = await select_repositories(client, options)
    timeframe = options.timeframe
    prs = await fetch_per_repo(
        repos,
        lambda name: client.get_repo_pulls_list(name, timeframe),
        options.concurrency,
        on_progress,
        on_skip,
    )
    return count_pull_requests(prs, options.include_bots, members)


async def get_issue_stats(
    client: GitHubClient,
    options: StatsOptions,
    on_progress: Optional[ProgressCallback] = None,
    on_skip: Optional[SkipCallback] = None,
) -> list[IssueStats]:
    """Issues opened (and closed) per author."""
    members = await member_logins(client, options)
    repos = await select_repositories(client, options)
    timeframe = options.timeframe
    issues = await fetch_per_repo(
        repos,
        lambda name: client.get_repo_issues_list(name, timeframe),
        options.concurrency,
        on_progress,
        on_skip,
    )
    return count_issues(issues, options.include_bots, members)


async def get_org_stats(
    client: GitHubClient,
    options: StatsOptions,
    on_progress: Optional[ProgressCallback] = None,
) -> OrgStats:
    """All three rankings over one repository selection."""
    members = await member_logins(client, options)
    repos = await select_repositories(client, options)
    timeframe = options.timeframe
    skipped: list[str] = []

    def on_skip(repo: Repository, _error: GitHubError) -> None:
        if repo.full_name not in skipped:
            skipped.append(repo.full_name)

    # Each kind is skipped on its own: an empty repository (409 on commits)
    # still has pull requests and issues worth counting.
    async def fetch_all(repo: Repository) -> tuple[list[Commit], list[PullRequest], list[Issue]]:
        commits = await _fetch_or_skip(
            repo, lambda name: client.get_repo_commits_list(name, timeframe), on_skip
        )
        prs = await _fetch_or_skip(repo, lambda name: client.get_repo_pulls_list(name, timeframe), on_skip)
        issues = await _fetch_or_skip(
            repo, lambda name: client.get_repo_issues_list(name, timeframe), on_skip
        )
        return commits, prs, issues

    per_repo = await batch_process(
        repos, fetch_all, concurrency=options.concurrency, on_progress=on_progress
    )
    commits = [c for cs, _, _ in per_repo for c in cs]
    prs = [p for _, ps, _ in per_repo for p in ps]
    issues = [i for _, _, is_ in per_repo for i in is_]

    return OrgStats(
        org=options.org,
        timeframe=timeframe,
        repositories=[r.full_name for r in repos],
        skipped=skipped,
        commits=rank(count_commits(commits, options.include_bots, members), options.top),
        pull_requests=rank(count_pull_requests(prs, options.include_bots, members), options.top),
        issues=rank(count_issues(issues, options.include_bots, members), options.top),
    )
