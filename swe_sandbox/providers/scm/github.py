"""GitHub repository metadata backed by the GitHub REST API."""

from __future__ import annotations

import json
import logging
import os
import time
import urllib.error
import urllib.request
from typing import Any, Callable

from swe_sandbox.errors import SandboxOperationError, TransientTransportError
from swe_sandbox.runtime.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_S = 30
API_RETRY = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0)


class GitHubProvider:
    def __init__(
        self,
        token: str | None = None,
        base_url: str = "https://api.github.com",
        retry_policy: RetryPolicy = API_RETRY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._token = token or os.getenv("GITHUB_PAT") or os.getenv("GITHUB_TOKEN")
        self._base_url = base_url.rstrip("/")
        self._retry_policy = retry_policy
        self._sleep = sleep

    def get_repo_default_branch(self, repo: str) -> str:
        response = with_retry(
            lambda: self._request("GET", f"/repos/{repo}"),
            self._retry_policy,
            sleep=self._sleep,
            description=f"GitHub lookup of {repo}",
        )
        if not isinstance(response, dict) or "default_branch" not in response:
            raise SandboxOperationError("Unexpected response from GitHub API.")
        return response["default_branch"]

    def _request(self, method: str, path: str) -> Any:
        request = urllib.request.Request(f"{self._base_url}{path}", method=method)
        request.add_header("Accept", "application/vnd.github+json")
        request.add_header("User-Agent", "swe-sandbox")
        if self._token:
            request.add_header("Authorization", f"Bearer {self._token}")
        try:
            with urllib.request.urlopen(request, timeout=REQUEST_TIMEOUT_S) as response:
                raw = response.read()
                return json.loads(raw.decode("utf-8")) if raw else None
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            if exc.code == 429 or exc.code >= 500:
                raise TransientTransportError(f"GitHub API error {exc.code}: {body}") from exc
            raise SandboxOperationError(f"GitHub API error {exc.code}: {body}") from exc
        except urllib.error.URLError as exc:
            raise TransientTransportError(f"GitHub API unreachable: {exc.reason}") from exc
