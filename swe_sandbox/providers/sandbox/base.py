"""Sandbox backend interfaces."""

from __future__ import annotations

import posixpath
from typing import Protocol, Sequence

from swe_sandbox.models.sandbox import (
    BackendType,
    CreateOptions,
    ExecResult,
    ExecuteOptions,
    GitCloneOptions,
    GitCommitOptions,
    GitOperationOptions,
    SandboxInfo,
    SandboxState,
)
from swe_sandbox.runtime.cancellation import CancellationToken

SANDBOX_ROOT_DIRS = {
    BackendType.DAYTONA: "/home/daytona",
    BackendType.E2B: "/home/user",
}


def repo_path_for(backend: BackendType, repo: str, local_root: str | None = None) -> str:
    """Absolute path of a repository checkout inside a sandbox."""
    if backend == BackendType.LOCAL:
        return local_root or "."
    return posixpath.join(SANDBOX_ROOT_DIRS[backend], repo)


class CommandRunner(Protocol):
    def execute_command(
        self,
        options: ExecuteOptions,
        cancellation: CancellationToken | None = None,
    ) -> ExecResult:
        ...


class GitOperations(Protocol):
    def clone(self, options: GitCloneOptions) -> None:
        ...

    def add(self, workdir: str, files: Sequence[str] = ()) -> None:
        ...

    def commit(self, options: GitCommitOptions) -> None:
        ...

    def push(self, options: GitOperationOptions) -> None:
        ...

    def pull(self, options: GitOperationOptions) -> None:
        ...

    def create_branch(self, workdir: str, branch_name: str) -> None:
        ...

    def status(self, workdir: str) -> str:
        ...


class SandboxHandle(CommandRunner, Protocol):
    git: GitOperations

    @property
    def id(self) -> str:
        ...

    @property
    def state(self) -> SandboxState:
        ...

    @property
    def backend(self) -> BackendType:
        ...

    def read_file(self, path: str) -> str:
        ...

    def write_file(self, path: str, content: str) -> None:
        ...

    def exists(self, path: str) -> bool:
        ...

    def mkdir(self, path: str) -> None:
        ...

    def remove(self, path: str) -> None:
        ...

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def extend_timeout(self, lifetime_seconds: int) -> None:
        ...


class BackendDriver(Protocol):
    def create(
        self,
        options: CreateOptions | None = None,
        cancellation: CancellationToken | None = None,
    ) -> SandboxHandle:
        ...

    def get(self, sandbox_id: str) -> SandboxHandle:
        ...

    def stop(self, sandbox_id: str) -> None:
        ...

    def delete(self, sandbox_id: str) -> bool:
        ...

    def list(self) -> Sequence[SandboxInfo]:
        ...
