"""Locate an already-provisioned GitHub credential."""

import logging
import os
import shutil
import subprocess
from typing import Literal, Optional

from pydantic import BaseModel

from pondus.errors import AuthError

logger = logging.getLogger(__name__)

AuthMethod = Literal["token", "gh-cli", "none"]


class AuthResult(BaseModel):
    method: AuthMethod
    token: Optional[str] = None


def get_gh_cli_token(timeout: float = 10.0) -> Optional[str]:
    """Token stored by ``gh auth login``, if the gh CLI is installed."""
    if shutil.which("gh") is None:
        return None
    try:
        proc = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("gh auth token failed: %s", e)
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout.strip() or None


def detect_auth() -> AuthResult:
    """GITHUB_TOKEN / GH_TOKEN first, then the gh CLI."""
    env_token = os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")
    if env_token:
        return AuthResult(method="token", token=env_token)

    gh_token = get_gh_cli_token()
    if gh_token:
        return AuthResult(method="gh-cli", token=gh_token)

    return AuthResult(method="none")


def get_token() -> str:
    """Return a token or raise :class:`AuthError`."""
    auth = detect_auth()
    if not auth.token:
        raise AuthError(
            "No GitHub authentication found. Either:\n"
            "  1. Set GITHUB_TOKEN environment variable\n"
            "  2. Run `gh auth login` to authenticate with GitHub CLI"
        )
    return auth.token
