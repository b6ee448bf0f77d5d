"""CLI entry point for pondus."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

import httpx

from pondus.client import GitHubClient
from pondus.config import Settings
from pondus.dates import parse_date, year_timeframe
from pondus.errors import AuthError, GitHubError, PondusError, RateLimitError
from pondus.stats import (
    StatsOptions,
    get_commit_stats,
    get_issue_stats,
    get_org_stats,
    get_pull_request_stats,
    rank,
)

logger = logging.getLogger(__name__)

STATS_COMMANDS = ("commits", "prs", "issues", "all")
ORG_COMMANDS = ("info", "members", "teams", "repos", "webhooks", "actions")


def format_error(error: BaseException) -> str:
    """One-line, user-facing description of a failure."""
    if isinstance(error, AuthError):
        return f"Authentication error: {error}"
    if isinstance(error, RateLimitError):
        return f"Rate limit exceeded. Resets at {error.reset_at:%H:%M:%S} UTC."
    if isinstance(error, GitHubError):
        if error.status == 404:
            return "Not found. Check that the organization name is correct and you have access to it."
        if error.status == 403:
            return "Access denied. Some features require admin access."
        if error.status == 401:
            return "Unauthorized. Your token is invalid or expired."
        return f"GitHub API error: {error.status} {error.status_text}".rstrip()
    if isinstance(error, httpx.HTTPError):
        return f"Network error: {error}"
    return f"Error: {error}"


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pondus", description="GitHub organization metrics.")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = p.add_subparsers(dest="group", required=True)

    stats = sub.add_parser("stats", help="Per-author statistics.")
    stats.add_argument("kind", choices=STATS_COMMANDS)
    stats.add_argument("org", help="Organization name.")
    stats.add_argument("-s", "--since", help="Start date (YYYY-MM-DD or ISO). Default: Jan 1st.")
    stats.add_argument("-u", "--until", help="End date (YYYY-MM-DD or ISO). Default: end of year.")
    stats.add_argument("-t", "--top", type=int, default=10, help="Show only top N authors.")
    stats.add_argument("--max-repos", type=int, default=10, help="Most recently pushed repositories to scan (0 = all).")
    stats.add_argument("--no-members-only", dest="members_only", action="store_false", help="Include non-members.")
    stats.add_argument("--include-bots", action="store_true", help="Include bot accounts.")

    org = sub.add_parser("org", help="Organization information and settings.")
    org.add_argument("kind", choices=ORG_COMMANDS)
    org.add_argument("org", help="Organization name.")
    org.add_argument("-r", "--role", choices=("all", "admin", "member"), default="all", help="Member role filter.")
    return p


def _stats_options(args: argparse.Namespace, settings: Settings) -> StatsOptions:
    window = year_timeframe()
    since = parse_date(args.since) if args.since else window.since
    until = parse_date(args.until, end_of_day=True) if args.until else window.until
    return StatsOptions(
        org=args.org,
        since=since,
        until=until,
        members_only=args.members_only,
        include_bots=args.include_bots,
        max_repos=args.max_repos or None,
        top=args.top,
        concurrency=settings.concurrency,
    )


async def _run_stats(client: GitHubClient, args: argparse.Namespace) -> Any:
    options = _stats_options(args, client.settings)
    if args.kind == "all":
        return await get_org_stats(client, options)
    getter = {
        "commits": get_commit_stats,
        "prs": get_pull_request_stats,
        "issues": get_issue_stats,
    }[args.kind]
    return rank(await getter(client, options), options.top)


async def _run_org(client: GitHubClient, args: argparse.Namespace) -> Any:
    org = args.org
    if args.kind == "info":
        return await client.get_organization(org)
    if args.kind == "members":
        return await client.get_org_members_list(org, role=args.role)
    if args.kind == "teams":
        return await client.get_org_teams_list(org)
    if args.kind == "repos":
        return await client.get_org_repos_list(org)
    if args.kind == "webhooks":
        return await client.get_org_webhooks(org)
    return {
        "settings": await client.get_actions_settings(org),
        "runners": await client.get_org_runners(org),
        "secrets": await client.get_org_secrets(org),
    }


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_jsonable(v) for k, v in value.items()}
    return value


async def run(args: argparse.Namespace, settings: Settings) -> Any:
    async with GitHubClient(settings) as client:
        if args.group == "stats":
            return await _run_stats(client, args)
        return await _run_org(client, args)


def main(argv: Optional[list[str]] = None) -> int:
    """Parse arguments, run the command and print JSON."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = Settings.from_env()
        result = asyncio.run(run(args, settings))
    except (PondusError, ValueError, httpx.HTTPError) as e:
        logger.debug("command failed", exc_info=True)
        print(format_error(e), file=sys.stderr)
        return 1

    print(json.dumps(_to_jsonable(result), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
