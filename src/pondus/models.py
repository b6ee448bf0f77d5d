"""Data models for pondus."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ── Timeframe ──────────────────────────────────────────────────────────────

class Timeframe(BaseModel):
    """Half-open statistics window ``[since, until)``."""

    since: datetime
    until: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("since", "until")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_order(self) -> "Timeframe":
        if self.until < self.since:
            raise ValueError("until must not precede since")
        return self

    @property
    def label(self) -> str:
        """Human-readable label."""
        return f"{self.since:%Y-%m-%d} → {self.until:%Y-%m-%d}"

    def contains(self, moment: datetime) -> bool:
        return self.since <= moment < self.until


# ── Raw GitHub resources ──────────────────────────────────────────────────

class GitHubRecord(BaseModel):
    """Immutable projection of a REST resource; unknown fields are dropped."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class Plan(GitHubRecord):
    name: str
    space: int = 0
    private_repos: int = 0
    filled_seats: Optional[int] = None
    seats: Optional[int] = None


class Organization(GitHubRecord):
    """An organization, including admin-only settings when visible."""

    login: str
    id: int
    name: Optional[str] = None
    description: Optional[str] = None
    company: Optional[str] = None
    blog: Optional[str] = None
    location: Optional[str] = None
    email: Optional[str] = None
    twitter_username: Optional[str] = None
    avatar_url: str = ""
    html_url: str = ""
    public_repos: int = 0
    public_gists: int = 0
    followers: int = 0
    following: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    type: str = "Organization"
    total_private_repos: Optional[int] = None
    owned_private_repos: Optional[int] = None
    collaborators: Optional[int] = None
    billing_email: Optional[str] = None
    plan: Optional[Plan] = None
    default_repository_permission: Optional[str] = None
    members_can_create_repositories: Optional[bool] = None
    two_factor_requirement_enabled: Optional[bool] = None
    web_commit_signoff_required: Optional[bool] = None
    advanced_security_enabled_for_new_repositories: Optional[bool] = None
    dependabot_alerts_enabled_for_new_repositories: Optional[bool] = None
    secret_scanning_enabled_for_new_repositories: Optional[bool] = None


class Member(GitHubRecord):
    login: str
    id: int
    avatar_url: str = ""
    html_url: str = ""
    type: str = "User"
    site_admin: bool = False


class Team(GitHubRecord):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    privacy: Optional[str] = None
    permission: Optional[str] = None
    members_count: Optional[int] = None
    repos_count: Optional[int] = None
    html_url: str = ""
    parent: Optional["Team"] = None


class Repository(GitHubRecord):
    id: int
    name: str
    full_name: str
    private: bool = False
    html_url: str = ""
    description: Optional[str] = None
    fork: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    pushed_at: Optional[datetime] = None
    size: int = 0
    stargazers_count: int = 0
    watchers_count: int = 0
    language: Optional[str] = None
    forks_count: int = 0
    archived: bool = False
    disabled: bool = False
    open_issues_count: int = 0
    default_branch: str = "main"
    visibility: Optional[str] = None


class WebhookConfig(GitHubRecord):
    url: Optional[str] = None
    content_type: Optional[str] = None
    insecure_ssl: Optional[str] = None


class Webhook(GitHubRecord):
    id: int
    name: str = "web"
    active: bool = True
    events: list[str] = Field(default_factory=list)
    config: WebhookConfig = Field(default_factory=WebhookConfig)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ActionsSettings(GitHubRecord):
    enabled_repositories: str
    allowed_actions: Optional[str] = None
    selected_actions_url: Optional[str] = None


class RunnerLabel(GitHubRecord):
    id: Optional[int] = None
    name: str
    type: Optional[str] = None


class Runner(GitHubRecord):
    id: int
    name: str
    os: str = ""
    status: str = ""
    busy: bool = False
    labels: list[RunnerLabel] = Field(default_factory=list)


class OrgSecret(GitHubRecord):
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    visibility: Optional[str] = None
    selected_repositories_url: Optional[str] = None


# ── Activity items (flattened) ────────────────────────────────────────────

class Commit(BaseModel):
    """A single commit with the GitHub accounts attached to it."""

    sha: str
    short_sha: str = ""
    message: str = ""
    author_name: str = "Unknown"
    author_email: str = ""
    author_login: Optional[str] = None
    author_type: Optional[str] = None
    committer_login: Optional[str] = None
    committer_type: Optional[str] = None
    date: Optional[datetime] = None
    url: str = ""

    def model_post_init(self, _ctx: object) -> None:
        if not self.short_sha:
            self.short_sha = self.sha[:7]

    @property
    def login(self) -> Optional[str]:
        """Account the commit is attributed to."""
        return self.author_login or self.committer_login

    @property
    def login_type(self) -> Optional[str]:
        return self.author_type if self.author_login else self.committer_type


class PullRequest(BaseModel):
    """A GitHub Pull Request."""

    number: int
    title: str
    author: str
    author_type: Optional[str] = None
    state: str = "open"
    created_at: datetime
    merged_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    url: str = ""
    labels: list[str] = Field(default_factory=list)


class Issue(BaseModel):
    """A GitHub Issue; the issues endpoint also lists pull requests."""

    number: int
    title: str
    author: str
    author_type: Optional[str] = None
    state: str = "open"
    created_at: datetime
    closed_at: Optional[datetime] = None
    url: str = ""
    labels: list[str] = Field(default_factory=list)
    is_pull_request: bool = False


# ── Statistics ────────────────────────────────────────────────────────────

class CommitStats(BaseModel):
    author: str
    count: int = 0


class PullRequestStats(BaseModel):
    author: str
    count: int = 0
    merged: int = 0


class IssueStats(BaseModel):
    """``count`` is issues opened; ``closed`` those of them now closed."""

    author: str
    count: int = 0
    closed: int = 0


class RankedStats(BaseModel):
    """Top-N authors plus the remainder for share displays."""

    top: list[CommitStats | PullRequestStats | IssueStats] = Field(default_factory=list)
    other: int = 0
    total: int = 0

    def share(self, count: int) -> float:
        """Percentage of ``total`` represented by ``count``."""
        return round(count / self.total * 100, 1) if self.total else 0.0


class OrgStats(BaseModel):
    """Commit, PR and issue rankings for one organization and window."""

    org: str
    timeframe: Timeframe
    repositories: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    commits: RankedStats = Field(default_factory=RankedStats)
    pull_requests: RankedStats = Field(default_factory=RankedStats)
    issues: RankedStats = Field(default_factory=RankedStats)
