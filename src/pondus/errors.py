"""Error taxonomy for the GitHub access layer."""

from datetime import datetime
from typing import Optional


class PondusError(Exception):
    """Base class for every error raised by pondus."""


class AuthError(PondusError):
    """No usable GitHub credential was found."""


class GitHubError(PondusError):
    """Non-2xx response from the GitHub REST API."""

    def __init__(self, status: int, status_text: str = "", body: Optional[str] = None) -> None:
        self.status = status
        self.status_text = status_text
        self.body = body
        message = f"GitHub API error: {status} {status_text}".rstrip()
        if body:
            message = f"{message} - {body}"
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Server errors and 429 are worth another attempt."""
        return self.status >= 500 or self.status == 429


class RateLimitError(GitHubError):
    """The API rate limit is exhausted until ``reset_at``."""

    def __init__(self, reset_at: datetime, body: Optional[str] = None) -> None:
        self.reset_at = reset_at
        super().__init__(403, "Rate Limit Exceeded", body)

    @property
    def is_retryable(self) -> bool:
        return True


class AbortedError(PondusError):
    """Batch processing was cancelled through its signal."""

    def __init__(self, message: str = "Batch processing aborted") -> None:
        super().__init__(message)
