"""Git primitives executed with the ``git`` binary inside a sandbox."""

from __future__ import annotations

import logging
import posixpath
import re
import shlex
from typing import Sequence
from urllib.parse import quote, urlsplit, urlunsplit

from swe_sandbox.errors import SandboxOperationError
from swe_sandbox.models.sandbox import (
    ExecResult,
    ExecuteOptions,
    GitCloneOptions,
    GitCommitOptions,
    GitOperationOptions,
)
from swe_sandbox.providers.sandbox.base import CommandRunner

logger = logging.getLogger(__name__)

GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}
INSTALL_TIMEOUT_S = 180
CLONE_TIMEOUT_S = 300
NETWORK_TIMEOUT_S = 120
DEFAULT_USERNAME = "x-access-token"


def redact_url(text: str) -> str:
    return re.sub(r"//[^/@\s]+@", "//***@", text)


def apply_auth(url: str, username: str | None, token: str | None) -> str:
    if not token:
        return url
    parts = urlsplit(url)
    if parts.scheme not in {"http", "https"}:
        return url
    user = quote(username or DEFAULT_USERNAME, safe="")
    netloc = f"{user}:{quote(token, safe='')}@{parts.hostname}"
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class ShellGit:
    """GitOperations implemented by shelling out through a sandbox handle."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def clone(self, options: GitCloneOptions) -> None:
        self._ensure_git_installed()
        parent = posixpath.dirname(options.target_dir.rstrip("/")) or "/"
        self._check(self._run(f"mkdir -p {shlex.quote(parent)}"), "mkdir")

        base_branch = options.base_branch or options.branch or "main"
        url = apply_auth(options.url, options.username, options.token)
        command = (
            f"git clone --depth 1 -b {shlex.quote(base_branch)} "
            f"{shlex.quote(url)} {shlex.quote(options.target_dir)}"
        )
        logger.info("Cloning %s (%s) into %s", redact_url(url), base_branch, options.target_dir)
        result = self._run(command, env=GIT_ENV, timeout=CLONE_TIMEOUT_S)
        if result.exit_code != 0:
            raise SandboxOperationError(
                f"git clone failed (exit {result.exit_code}): "
                f"{redact_url(result.stderr or result.combined_output)}"
            )

        if options.branch and options.branch != base_branch:
            branch = shlex.quote(options.branch)
            checkout = self._run(
                f"git fetch --depth 1 origin {branch}:{branch} >/dev/null 2>&1 "
                f"&& git checkout {branch} || git checkout -b {branch}",
                workdir=options.target_dir,
                env=GIT_ENV,
                timeout=NETWORK_TIMEOUT_S,
            )
            if checkout.exit_code != 0:
                logger.warning(
                    "Failed to check out branch %s in %s: %s",
                    options.branch,
                    options.target_dir,
                    checkout.stderr or checkout.combined_output,
                )

        if options.commit:
            self._run(
                "git fetch --unshallow || true",
                workdir=options.target_dir,
                env=GIT_ENV,
                timeout=CLONE_TIMEOUT_S,
            )
            result = self._run(
                f"git checkout {shlex.quote(options.commit)}",
                workdir=options.target_dir,
            )
            self._check(result, f"git checkout {options.commit}")

    def add(self, workdir: str, files: Sequence[str] = ()) -> None:
        if files:
            command = "git add " + " ".join(shlex.quote(name) for name in files)
        else:
            command = "git add -A"
        self._check(self._run(command, workdir=workdir), "git add")

    def commit(self, options: GitCommitOptions) -> None:
        self._run(
            f"git config user.name {shlex.quote(options.author_name)} && "
            f"git config user.email {shlex.quote(options.author_email)}",
            workdir=options.workdir,
        )
        result = self._run(f"git commit -m {shlex.quote(options.message)}", workdir=options.workdir)
        if result.exit_code != 0 and "nothing to commit" not in result.combined_output:
            self._check(result, "git commit")

    def push(self, options: GitOperationOptions) -> None:
        self._configure_credentials(options)
        branch = options.branch or self._current_branch(options.workdir)
        force = "--force " if options.force else ""
        result = self._run(
            f"git push {force}-u origin {shlex.quote(branch)}",
            workdir=options.workdir,
            env=GIT_ENV,
            timeout=NETWORK_TIMEOUT_S,
        )
        self._check(result, "git push")

    def pull(self, options: GitOperationOptions) -> None:
        self._configure_credentials(options)
        command = "git pull"
        if options.branch:
            command = f"git pull origin {shlex.quote(options.branch)}"
        result = self._run(command, workdir=options.workdir, env=GIT_ENV, timeout=NETWORK_TIMEOUT_S)
        self._check(result, "git pull")

    def create_branch(self, workdir: str, branch_name: str) -> None:
        branch = shlex.quote(branch_name)
        result = self._run(f"git checkout -b {branch}", workdir=workdir)
        if result.exit_code == 0:
            return
        if "already exists" in result.combined_output:
            self._check(self._run(f"git checkout {branch}", workdir=workdir), "git checkout")
            return
        self._check(result, "git checkout -b")

    def status(self, workdir: str) -> str:
        result = self._check(self._run("git status --porcelain", workdir=workdir), "git status")
        return result.stdout

    def _ensure_git_installed(self) -> None:
        if self._run("which git").exit_code == 0:
            return
        logger.info("git not found in sandbox, installing")
        result = self._run(
            "apt-get update && apt-get install -y git",
            env={"DEBIAN_FRONTEND": "noninteractive"},
            timeout=INSTALL_TIMEOUT_S,
        )
        self._check(result, "git install")

    def _configure_credentials(self, options: GitOperationOptions) -> None:
        if not options.token:
            return
        username = options.username or DEFAULT_USERNAME
        helper = (
            f'!f() {{ echo "username={username}"; echo "password={options.token}"; }}; f'
        )
        result = self._run(
            f"git config credential.helper {shlex.quote(helper)}",
            workdir=options.workdir,
        )
        if result.exit_code != 0:
            raise SandboxOperationError("Failed to configure git credentials")

    def _current_branch(self, workdir: str) -> str:
        result = self._check(
            self._run("git rev-parse --abbrev-ref HEAD", workdir=workdir),
            "git rev-parse",
        )
        return result.stdout.strip()

    def _run(
        self,
        command: str,
        workdir: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> ExecResult:
        return self._runner.execute_command(
            ExecuteOptions(command=command, workdir=workdir, env=env or {}, timeout_sec=timeout)
        )

    @staticmethod
    def _check(result: ExecResult, action: str) -> ExecResult:
        if result.exit_code != 0:
            detail = result.stderr or result.combined_output
            raise SandboxOperationError(
                f"{action} failed (exit {result.exit_code}): {redact_url(detail.strip())}"
            )
        return result
