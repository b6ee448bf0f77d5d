"""Tests for per-author organization statistics."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx

from pondus.client import GitHubClient
from pondus.errors import GitHubError, RateLimitError
from pondus.models import (
    Commit,
    CommitStats,
    Issue,
    Member,
    PullRequest,
    Repository,
)
from pondus.stats import (
    StatsOptions,
    count_commits,
    count_issues,
    count_pull_requests,
    fetch_per_repo,
    get_commit_stats,
    get_org_stats,
    get_pull_request_stats,
    is_bot,
    rank,
    select_repositories,
)

API = "https://api.github.com"
SINCE = datetime(2025, 1, 1, tzinfo=timezone.utc)
UNTIL = datetime(2025, 2, 1, tzinfo=timezone.utc)


def make_commit(login: str, account_type: str = "User", sha: str = "deadbeef") -> Commit:
    return Commit(sha=sha, author_login=login, author_type=account_type)


def make_repo(name: str, pushed_days_ago: int = 0) -> Repository:
    return Repository(
        id=hash(name) & 0xFFFF,
        name=name,
        full_name=f"acme/{name}",
        pushed_at=UNTIL - timedelta(days=pushed_days_ago),
    )


def make_options(**overrides) -> StatsOptions:
    values = {"org": "acme", "since": SINCE, "until": UNTIL, "members_only": False}
    values.update(overrides)
    return StatsOptions(**values)


def mock_client(repos, commits_by_repo=None, members=()) -> MagicMock:
    """A client whose list methods return canned data per repository."""
    client = MagicMock(spec=GitHubClient)
    client.get_org_repos_list = AsyncMock(return_value=list(repos))
    client.get_org_members_list = AsyncMock(
        return_value=[Member(login=login, id=i) for i, login in enumerate(members)]
    )
    commits_by_repo = commits_by_repo or {}

    async def commits_for(name, timeframe):
        value = commits_by_repo.get(name, [])
        if isinstance(value, Exception):
            raise value
        return value

    client.get_repo_commits_list = AsyncMock(side_effect=commits_for)
    client.get_repo_pulls_list = AsyncMock(return_value=[])
    client.get_repo_issues_list = AsyncMock(return_value=[])
    return client


class TestBotDetection:
    def test_type_bot(self):
        assert is_bot("ci-bot", "Bot")

    def test_login_suffix(self):
        assert is_bot("dependabot[bot]", None)

    def test_regular_user(self):
        assert not is_bot("alice", "User")
        assert not is_bot(None, None)


class TestReducers:
    def test_count_commits_excludes_bots(self):
        commits = (
            [make_commit("alice")] * 5
            + [make_commit("bob")] * 3
            + [make_commit("ci-bot", "Bot")] * 10
        )
        stats = count_commits(commits)
        assert [(s.author, s.count) for s in stats] == [("alice", 5), ("bob", 3)]

    def test_count_commits_can_include_bots(self):
        commits = [make_commit("alice")] * 2 + [make_commit("ci-bot", "Bot")] * 3
        stats = count_commits(commits, include_bots=True)
        assert [(s.author, s.count) for s in stats] == [("ci-bot", 3), ("alice", 2)]

    def test_count_commits_member_filter(self):
        commits = [make_commit("alice"), make_commit("outsider"), make_commit("alice")]
        stats = count_commits(commits, members={"alice"})
        assert [(s.author, s.count) for s in stats] == [("alice", 2)]

    def test_commits_without_account_are_ignored(self):
        stats = count_commits([Commit(sha="abc", author_name="Someone")])
        assert stats == []

    def test_committer_login_used_when_author_unlinked(self):
        commit = Commit(sha="abc", committer_login="carol", committer_type="User")
        assert [s.author for s in count_commits([commit])] == ["carol"]

    def test_ties_keep_first_seen_order(self):
        commits = [make_commit("zed"), make_commit("amy"), make_commit("zed"), make_commit("amy")]
        assert [s.author for s in count_commits(commits)] == ["zed", "amy"]

    def test_count_pull_requests_tracks_merged(self):
        prs = [
            PullRequest(number=1, title="a", author="alice", created_at=SINCE, merged_at=SINCE),
            PullRequest(number=2, title="b", author="alice", created_at=SINCE),
            PullRequest(number=3, title="c", author="renovate[bot]", created_at=SINCE),
        ]
        stats = count_pull_requests(prs)
        assert len(stats) == 1
        assert (stats[0].count, stats[0].merged) == (2, 1)

    def test_count_issues_skips_pull_requests(self):
        issues = [
            Issue(number=1, title="a", author="bob", created_at=SINCE, state="closed"),
            Issue(number=2, title="b", author="bob", created_at=SINCE, closed_at=UNTIL),
            Issue(number=3, title="c", author="bob", created_at=SINCE),
            Issue(number=4, title="d", author="bob", created_at=SINCE, is_pull_request=True),
        ]
        stats = count_issues(issues)
        assert (stats[0].count, stats[0].closed) == (3, 2)


class TestRank:
    def test_top_and_other(self):
        stats = [CommitStats(author=a, count=c) for a, c in [("a", 1), ("b", 7), ("c", 4), ("d", 2)]]
        ranked = rank(stats, top=2)
        assert [s.author for s in ranked.top] == ["b", "c"]
        assert ranked.other == 3
        assert ranked.total == 14
        assert ranked.share(7) == 50.0

    def test_empty(self):
        ranked = rank([], top=5)
        assert ranked.top == []
        assert ranked.total == 0
        assert ranked.share(0) == 0.0


class TestRepositorySelection:
    @pytest.mark.asyncio
    async def test_most_recently_pushed_first(self):
        repos = [make_repo("old", 30), make_repo("new", 1), make_repo("mid", 10)]
        client = mock_client(repos)
        selected = await select_repositories(client, make_options(max_repos=2))
        assert [r.name for r in selected] == ["new", "mid"]

    @pytest.mark.asyncio
    async def test_never_pushed_sorts_last(self):
        repos = [Repository(id=1, name="blank", full_name="acme/blank"), make_repo("live", 3)]
        client = mock_client(repos)
        selected = await select_repositories(client, make_options(max_repos=None))
        assert [r.name for r in selected] == ["live", "blank"]


class TestFetchPerRepo:
    @pytest.mark.asyncio
    async def test_skips_unreadable_repositories(self):
        repos = [make_repo("ok"), make_repo("private"), make_repo("empty"), make_repo("gone")]
        errors = {
            "acme/private": GitHubError(403, "Forbidden"),
            "acme/empty": GitHubError(409, "Conflict"),
            "acme/gone": GitHubError(404, "Not Found"),
        }
        skipped = []

        async def fetch(name):
            if name in errors:
                raise errors[name]
            return [name]

        items = await fetch_per_repo(repos, fetch, on_skip=lambda repo, e: skipped.append(repo.name))
        assert items == ["acme/ok"]
        assert sorted(skipped) == ["empty", "gone", "private"]

    @pytest.mark.asyncio
    async def test_rate_limit_propagates(self):
        async def fetch(name):
            raise RateLimitError(UNTIL)

        with pytest.raises(RateLimitError):
            await fetch_per_repo([make_repo("a")], fetch)

    @pytest.mark.asyncio
    async def test_server_error_propagates(self):
        async def fetch(name):
            raise GitHubError(502, "Bad Gateway")

        with pytest.raises(GitHubError):
            await fetch_per_repo([make_repo("a")], fetch)


class TestCommitStats:
    @pytest.mark.asyncio
    async def test_bots_excluded_across_repositories(self):
        repos = [make_repo("one", 1), make_repo("two", 2), make_repo("three", 3)]
        client = mock_client(
            repos,
            {
                "acme/one": [make_commit("alice")] * 3 + [make_commit("ci-bot", "Bot")] * 4,
                "acme/two": [make_commit("alice")] * 2 + [make_commit("bob")] * 3,
                "acme/three": [make_commit("ci-bot", "Bot")] * 6,
            },
        )
        stats = await get_commit_stats(client, make_options())

        assert [(s.author, s.count) for s in stats] == [("alice", 5), ("bob", 3)]
        assert rank(stats).total == 8

    @pytest.mark.asyncio
    async def test_members_only(self):
        repos = [make_repo("one")]
        client = mock_client(
            repos,
            {"acme/one": [make_commit("alice"), make_commit("contractor")]},
            members=["alice"],
        )
        stats = await get_commit_stats(client, make_options(members_only=True))
        assert [s.author for s in stats] == ["alice"]
        client.get_org_members_list.assert_awaited_once_with("acme")

    @pytest.mark.asyncio
    async def test_members_not_fetched_when_disabled(self):
        client = mock_client([make_repo("one")])
        await get_commit_stats(client, make_options(members_only=False))
        client.get_org_members_list.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_skipped_repository_reported(self):
        repos = [make_repo("one"), make_repo("locked")]
        client = mock_client(
            repos,
            {"acme/one": [make_commit("alice")], "acme/locked": GitHubError(403, "Forbidden")},
        )
        skipped = []
        stats = await get_commit_stats(
            client, make_options(), on_skip=lambda repo, e: skipped.append((repo.name, e.status))
        )
        assert [s.author for s in stats] == ["alice"]
        assert skipped == [("locked", 403)]

    @pytest.mark.asyncio
    async def test_progress_per_repository(self):
        repos = [make_repo(f"r{i}") for i in range(3)]
        client = mock_client(repos)
        progress = MagicMock()
        await get_commit_stats(client, make_options(concurrency=2), on_progress=progress)
        assert progress.call_count == 3


class TestPullRequestStats:
    @pytest.mark.asyncio
    async def test_counts_and_merged(self):
        client = mock_client([make_repo("one")])
        client.get_repo_pulls_list = AsyncMock(
            return_value=[
                PullRequest(number=1, title="a", author="alice", created_at=SINCE, merged_at=SINCE),
                PullRequest(number=2, title="b", author="bob", created_at=SINCE),
            ]
        )
        stats = await get_pull_request_stats(client, make_options())
        assert {(s.author, s.count, s.merged) for s in stats} == {("alice", 1, 1), ("bob", 1, 0)}


class TestOrgStats:
    @pytest.mark.asyncio
    async def test_combined_rankings(self):
        repos = [make_repo("one", 1), make_repo("locked", 2)]
        client = mock_client(
            repos,
            {
                "acme/one": [make_commit("alice")] * 2 + [make_commit("bob")],
                "acme/locked": GitHubError(404, "Not Found"),
            },
        )
        client.get_repo_issues_list = AsyncMock(
            side_effect=lambda name, timeframe: (
                [Issue(number=1, title="bug", author="bob", created_at=SINCE)] if name == "acme/one" else []
            )
        )
        result = await get_org_stats(client, make_options(top=1))

        assert result.repositories == ["acme/one", "acme/locked"]
        assert result.skipped == ["acme/locked"]
        assert [s.author for s in result.commits.top] == ["alice"]
        assert result.commits.other == 1
        assert result.issues.total == 1
        assert result.pull_requests.total == 0

    @pytest.mark.asyncio
    async def test_empty_repository_still_counts_issues(self):
        client = mock_client(
            [make_repo("tracker")],
            {"acme/tracker": GitHubError(409, "Git Repository is empty.")},
        )
        client.get_repo_issues_list = AsyncMock(
            return_value=[Issue(number=7, title="question", author="carol", created_at=SINCE)]
        )
        result = await get_org_stats(client, make_options())

        assert result.skipped == ["acme/tracker"]
        assert result.commits.total == 0
        assert result.issues.total == 1
        assert [s.author for s in result.issues.top] == ["carol"]
        client.get_repo_pulls_list.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rate_limit_propagates(self):
        client = mock_client([make_repo("one")])
        client.get_repo_pulls_list = AsyncMock(side_effect=RateLimitError(UNTIL))
        with pytest.raises(RateLimitError):
            await get_org_stats(client, make_options())


class TestEndToEnd:
    @pytest.mark.asyncio
    @respx.mock
    async def test_commit_stats_over_http(self, github_client):
        respx.get(f"{API}/orgs/acme/repos").mock(
            return_value=httpx.Response(
                200,
                json=[
                    {"id": 1, "name": "api", "full_name": "acme/api", "pushed_at": "2025-01-30T00:00:00Z"},
                    {"id": 2, "name": "web", "full_name": "acme/web", "pushed_at": "2025-01-29T00:00:00Z"},
                ],
            )
        )

        def commit(sha, login, account_type="User"):
            return {
                "sha": sha,
                "commit": {"message": "m", "author": {"name": login, "email": "", "date": "2025-01-10T00:00:00Z"}},
                "author": {"login": login, "type": account_type},
                "committer": {"login": login, "type": account_type},
            }

        respx.get(f"{API}/repos/acme/api/commits").mock(
            return_value=httpx.Response(200, json=[commit("1", "alice"), commit("2", "github-actions[bot]", "Bot")])
        )
        respx.get(f"{API}/repos/acme/web/commits").mock(
            return_value=httpx.Response(409, text="Git Repository is empty.")
        )

        skipped = []
        stats = await get_commit_stats(
            github_client, make_options(), on_skip=lambda repo, e: skipped.append(repo.full_name)
        )
        await github_client.close()

        assert [(s.author, s.count) for s in stats] == [("alice", 1)]
        assert skipped == ["acme/web"]


class TestStatsOptions:
    def test_rejects_reversed_window(self):
        with pytest.raises(ValueError):
            make_options(since=UNTIL, until=SINCE).timeframe

    def test_rejects_zero_top(self):
        with pytest.raises(ValueError):
            make_options(top=0)
