"""Data models for sandbox interactions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


class BackendType(str, Enum):
    DAYTONA = "daytona"
    E2B = "e2b"
    LOCAL = "local"


class SandboxState(str, Enum):
    CREATING = "creating"
    STARTED = "started"
    STOPPED = "stopped"
    ARCHIVED = "archived"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "SandboxState":
        """Map a backend-reported state (enum, string or None) onto SandboxState."""
        raw = getattr(value, "value", value)
        if raw is None:
            return cls.UNKNOWN
        normalized = str(raw).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        if normalized in {"running", "active"}:
            return cls.STARTED
        if normalized in {"paused", "stopping"}:
            return cls.STOPPED
        return cls.UNKNOWN


@dataclass(frozen=True)
class CreateOptions:
    template: str | None = None
    user: str | None = None
    env_vars: Mapping[str, str] = field(default_factory=dict)
    metadata: Mapping[str, str] = field(default_factory=dict)
    lifetime_ms: int | None = None
    auto_delete_minutes: int | None = None


@dataclass(frozen=True)
class ExecuteOptions:
    command: str
    workdir: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout_sec: int | None = None


@dataclass(frozen=True)
class ExecResult:
    exit_code: int
    stdout: str
    stderr: str
    combined_output: str = ""
    duration_ms: int = 0

    @classmethod
    def from_streams(
        cls,
        exit_code: int,
        stdout: str | None,
        stderr: str | None,
        duration_ms: int = 0,
    ) -> "ExecResult":
        stdout = stdout or ""
        stderr = stderr or ""
        if stdout and stderr:
            separator = "" if stdout.endswith("\n") else "\n"
            combined = f"{stdout}{separator}{stderr}"
        else:
            combined = stdout or stderr
        return cls(
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            combined_output=combined,
            duration_ms=duration_ms,
        )

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class SandboxInfo:
    id: str
    backend: BackendType
    state: SandboxState = SandboxState.UNKNOWN
    template: Optional[str] = None
    created_at: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class GitCloneOptions:
    url: str
    target_dir: str
    branch: str | None = None
    base_branch: str | None = None
    commit: str | None = None
    username: str | None = None
    token: str | None = None


@dataclass(frozen=True)
class GitOperationOptions:
    workdir: str
    branch: str | None = None
    username: str | None = None
    token: str | None = None
    force: bool = False


@dataclass(frozen=True)
class GitCommitOptions:
    workdir: str
    message: str
    author_name: str = "open-swe[bot]"
    author_email: str = "open-swe@users.noreply.github.com"
