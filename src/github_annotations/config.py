"""Validated settings for an upload, and the GitHub Actions context it runs in."""

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from github_annotations.checks import ConclusionPolicy


class ConfigurationError(Exception):
    """Raised when required configuration or CI context is missing."""


class UploadSettings(BaseModel):
    """All inputs of an annotation upload, validated before any network call."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(min_length=1)
    name: str = Field(min_length=1)
    title: str = Field(min_length=1)
    commit: str = ""
    changed_since: str = ""
    conclusions: ConclusionPolicy = ConclusionPolicy()
    result_format: Literal["json", "sarif"] = "json"
    local_repo_path: Path = Path()
    reuse_check_run: bool = False


class GitHubContext(BaseModel):
    """The parts of the GitHub Actions environment needed to report a check run."""

    repository: str = ""
    sha: str = ""
    api_url: str = "https://api.github.com"
    pull_request_head_sha: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GitHubContext":
        """Read the context from the environment variables set by GitHub Actions."""
        environ = os.environ if environ is None else environ
        pull_request_head_sha: str | None = None
        if event_path := environ.get("GITHUB_EVENT_PATH"):
            with Path(event_path).open("r", encoding="utf-8") as event_file:
                event = json.load(event_file)
            pull_request = event.get("pull_request") or {}
            pull_request_head_sha = (pull_request.get("head") or {}).get("sha")
        return cls(
            repository=environ.get("GITHUB_REPOSITORY", ""),
            sha=environ.get("GITHUB_SHA", ""),
            api_url=environ.get("GITHUB_API_URL") or "https://api.github.com",
            pull_request_head_sha=pull_request_head_sha,
        )

    def resolve_head_sha(self, commit: str = "") -> str:
        """Pick the commit to report on.

        An explicitly given commit wins, then the head of the pull request that
        triggered the workflow, then the commit the workflow runs on.

        :raises ConfigurationError: if none of them is known
        """
        head_sha = commit or self.pull_request_head_sha or self.sha
        if not head_sha:
            msg = "No commit given and none found in the GitHub Actions context."
            raise ConfigurationError(msg)
        return head_sha
