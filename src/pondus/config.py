"""Runtime settings, read from the environment (and ``.env``)."""

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "PONDUS_"


class Settings(BaseModel):
    """Knobs for the API client, cache and fan-out."""

    github_token: Optional[str] = None
    api_url: str = "https://api.github.com"
    timeout: float = 30.0
    cache_type: Literal["memory", "disk"] = "memory"
    cache_dir: Optional[Path] = None
    cache_ttl: float = Field(default=300.0, ge=0)
    stale_while_revalidate: float = Field(default=0.0, ge=0)
    max_cache_entries: int = Field(default=1000, ge=1)
    concurrency: int = Field(default=10, ge=1)
    max_retries: int = Field(default=3, ge=0)

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> "Settings":
        """Build settings from ``PONDUS_*`` variables and GITHUB_TOKEN/GH_TOKEN."""
        if load_dotenv_file:
            from dotenv import find_dotenv, load_dotenv

            load_dotenv(find_dotenv(usecwd=True))  # .env in the working directory

        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw

        token = os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN")
        if token and "github_token" not in values:
            values["github_token"] = token

        return cls.model_validate(values)
