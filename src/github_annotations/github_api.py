"""Utility functions to help interface with the GitHub checks API."""

import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import jwt
from requests import Response, get, patch, post

from github_annotations.models import (
    CheckRunConclusion,
    CheckRunOutput,
    CheckRunStatus,
)

GITHUB_API_ACCEPT = "application/vnd.github+json"


def _get_jwt_headers(jwt_str: str, accept_type: str) -> dict[str, str]:
    return {
        "Accept": f"{accept_type}",
        "Authorization": f"Bearer {jwt_str}",
    }


def _gen_github_timestamp() -> str:
    """Generate a timestamp for the current moment in the GitHub-expected format."""
    return datetime.now().astimezone().replace(microsecond=0).isoformat()


@dataclass
class AppInstallation:
    """Local installation of a GitHub app, identified by App ID and Installation ID."""

    app_id: str
    app_installation_id: str
    github_api_url: str = "https://api.github.com"

    def _generate_app_jwt_from_pem(
        self,
        pem_filepath: Path,
        ttl_seconds: int = 600,
    ) -> str:
        priv_key = pem_filepath.read_bytes()
        now = int(time.time())
        jwt_payload = {
            # issued slightly in the past to tolerate clock drift towards GitHub
            "iat": now - 60,
            "exp": now + ttl_seconds,
            "iss": self.app_id,
        }
        return jwt.encode(jwt_payload, priv_key, algorithm="RS256")

    def authenticate(self, app_privkey_pem: Path, timeout: int = 10) -> str:
        """Authenticate this App installation with GitHub and get an access token.

        :param app_privkey_pem: private key for this app in PEM format
        :param timeout: request timeout in seconds, optional, defaults to 10
        :return: the GitHub App access token
        :raises HTTPError: in case GitHub refused to issue an installation token
        """
        app_jwt: str = self._generate_app_jwt_from_pem(app_privkey_pem)
        url: str = (
            f"{self.github_api_url}/app/installations/{self.app_installation_id}"
            "/access_tokens"
        )
        response: Response = post(
            url,
            headers=_get_jwt_headers(app_jwt, GITHUB_API_ACCEPT),
            timeout=timeout,
        )
        response.raise_for_status()
        return str(response.json().get("token"))


@dataclass
class GitHubChecks:
    """Thin client for the parts of the GitHub REST API used to report check runs.

    Every method issues exactly one request and raises ``requests.HTTPError`` on any
    non-success response. Nothing is retried.
    """

    repository: str
    access_token: str
    github_api_url: str = "https://api.github.com"
    timeout: int = 10
    headers: dict[str, str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Initialize the headers for usage with the Checks API."""
        self.headers = _get_jwt_headers(self.access_token, GITHUB_API_ACCEPT)

    @property
    def repo_api_url(self) -> str:
        """Base URL of all repository scoped endpoints."""
        return f"{self.github_api_url.rstrip('/')}/repos/{self.repository}"

    def compare_commits(self, base: str, head: str) -> list[str]:
        """List the names of the files that differ between two commits.

        :param base: base reference of the comparison, e.g. a branch or commit sha
        :param head: head commit sha of the comparison
        :return: the changed file paths, as reported by GitHub
        """
        response: Response = get(
            f"{self.repo_api_url}/compare/{base}...{head}",
            headers=self.headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return [file["filename"] for file in response.json().get("files") or []]

    def find_check_runs(self, ref: str, check_name: str) -> list[int]:
        """Look up the ids of check runs with the given name on a commit.

        :param ref: the commit sha (or branch/tag) the check runs were reported on
        :param check_name: name of the check runs to look for
        :return: matching check run ids, most recent first
        """
        response: Response = get(
            f"{self.repo_api_url}/commits/{ref}/check-runs",
            params={"check_name": check_name, "filter": "latest"},
            headers=self.headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return [run["id"] for run in response.json().get("check_runs") or []]

    def create_check_run(
        self,
        check_name: str,
        revision_sha: str,
        output: CheckRunOutput,
    ) -> int:
        """Start a new run of a check, in progress.

        :param check_name: name shown for this check run, e.g. on pull requests
        :param revision_sha: the sha revision being evaluated by this check run
        :param output: initial title and summary of the check run
        :return: the id of the newly created check run
        """
        json_payload: dict[str, Any] = {
            "name": check_name,
            "head_sha": revision_sha,
            "status": CheckRunStatus.IN_PROGRESS.value,
            "started_at": _gen_github_timestamp(),
            "output": output.to_payload(),
        }
        response: Response = post(
            f"{self.repo_api_url}/check-runs",
            json=json_payload,
            headers=self.headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return int(response.json()["id"])

    def update_check_run(
        self,
        check_run_id: int,
        output: CheckRunOutput | None = None,
        status: CheckRunStatus | None = None,
        conclusion: CheckRunConclusion | None = None,
    ) -> None:
        """Update an existing check run.

        Only the given fields are sent. Setting a conclusion implicitly completes the
        check run on GitHub's side, so the completion timestamp is added alongside it.

        :param check_run_id: id of the check run to update
        :param output: new output, any annotations in it are appended to the run's
        :param status: new lifecycle status of the check run
        :param conclusion: the overall result to be fed back, e.g. for PR approval
        """
        json_payload: dict[str, Any] = {}
        if output is not None:
            json_payload["output"] = output.to_payload()
        if status is not None:
            json_payload["status"] = status.value
        if conclusion is not None:
            json_payload["conclusion"] = conclusion.value
            json_payload["completed_at"] = _gen_github_timestamp()
        response: Response = patch(
            f"{self.repo_api_url}/check-runs/{check_run_id}",
            json=json_payload,
            headers=self.headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
