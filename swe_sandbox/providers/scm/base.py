"""SCM provider interface."""

from __future__ import annotations

from typing import Protocol


class ScmProvider(Protocol):
    def get_repo_default_branch(self, repo: str) -> str:
        ...
