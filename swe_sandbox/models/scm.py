"""Repository references handed to the sandbox layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TargetRepository:
    owner: str
    repo: str
    branch: str | None = None
    base_commit: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def clone_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}.git"
