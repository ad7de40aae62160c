"""Get-or-recreate lifecycle for the sandbox backing one agent session."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import posixpath
import time
from typing import Callable

from swe_sandbox.config import Settings
from swe_sandbox.errors import (
    CancelledError,
    NoCredentialsError,
    RepositorySetupError,
    RetryExhaustedError,
    SandboxError,
    UnrecoverableSandboxStateError,
)
from swe_sandbox.models.sandbox import (
    BackendType,
    GitCloneOptions,
    GitCommitOptions,
    GitOperationOptions,
    SandboxState,
)
from swe_sandbox.models.scm import TargetRepository
from swe_sandbox.providers.sandbox.base import (
    SANDBOX_ROOT_DIRS,
    BackendDriver,
    SandboxHandle,
    repo_path_for,
)
from swe_sandbox.providers.sandbox.git import DEFAULT_USERNAME
from swe_sandbox.providers.sandbox.local import LocalDriver
from swe_sandbox.providers.scm import ScmProvider
from swe_sandbox.runtime.cancellation import CancellationToken
from swe_sandbox.runtime.context import OrchestratorContext
from swe_sandbox.runtime.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

AUXILIARY_DIR = ".skills"
DEFAULT_BASE_BRANCH = "main"


def _retry_create(error: BaseException) -> bool:
    return not isinstance(error, NoCredentialsError)


CREATE_RETRY = RetryPolicy(max_attempts=3, base_delay=5.0, retryable=_retry_create)


@dataclass(frozen=True)
class SandboxSession:
    handle: SandboxHandle
    repo_path: str
    dependencies_installed: bool | None
    recreated: bool = False


class SandboxLifecycleCoordinator:
    def __init__(
        self,
        orchestrator: BackendDriver,
        settings: Settings,
        *,
        scm: ScmProvider | None = None,
        local_driver: LocalDriver | None = None,
        create_retry: RetryPolicy = CREATE_RETRY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._orchestrator = orchestrator
        self._settings = settings
        self._scm = scm
        self._local_driver = local_driver
        self._create_retry = create_retry
        self._sleep = sleep

    @classmethod
    def from_context(cls, context: OrchestratorContext) -> "SandboxLifecycleCoordinator":
        return cls(
            context.orchestrator,
            context.settings,
            scm=context.scm,
            local_driver=context.local_driver if context.is_local else None,
        )

    def get_or_recreate(
        self,
        session_id: str | None,
        repo: TargetRepository,
        branch: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> SandboxSession:
        if self._local_driver is not None:
            handle = self._local_driver.open(self._settings.working_directory, session_id)
            self._ensure_auxiliary_repository_quietly(handle)
            return SandboxSession(handle=handle, repo_path=str(handle.root), dependencies_installed=None)

        if session_id:
            try:
                handle = self._reuse(session_id)
                self._ensure_auxiliary_repository(handle)
            except CancelledError:
                raise
            except Exception as exc:
                logger.warning("Cannot reuse sandbox %s, recreating: %s", session_id, exc)
            else:
                return SandboxSession(
                    handle=handle,
                    repo_path=repo_path_for(handle.backend, repo.repo),
                    dependencies_installed=None,
                )
        return self._recreate(repo, branch, cancellation)

    def commit_changes(
        self,
        session: SandboxSession,
        branch: str,
        message: str,
        cancellation: CancellationToken | None = None,
    ) -> bool:
        """Commit and push pending changes; returns False when the tree is clean."""
        handle = session.handle
        changed = [line for line in handle.git.status(session.repo_path).splitlines() if line.strip()]
        if not changed:
            logger.info("No changes to commit in %s", session.repo_path)
            return False
        if cancellation is not None:
            cancellation.raise_if_cancelled("committing changes")
        token = self._settings.github_token
        handle.git.create_branch(session.repo_path, branch)
        handle.git.add(session.repo_path)
        handle.git.commit(GitCommitOptions(workdir=session.repo_path, message=message))
        handle.git.push(
            GitOperationOptions(
                workdir=session.repo_path,
                branch=branch,
                username=DEFAULT_USERNAME,
                token=token,
            )
        )
        logger.info("Committed %d changed files on %s", len(changed), branch)
        return True

    def _reuse(self, session_id: str) -> SandboxHandle:
        handle = self._orchestrator.get(session_id)
        state = handle.state
        if state == SandboxState.STARTED:
            return handle
        if state in {SandboxState.STOPPED, SandboxState.ARCHIVED}:
            logger.info("Sandbox %s is %s, starting it", session_id, state.value)
            handle.start()
            return handle
        raise UnrecoverableSandboxStateError(session_id, state.value)

    def _recreate(
        self,
        repo: TargetRepository,
        branch: str | None,
        cancellation: CancellationToken | None,
    ) -> SandboxSession:
        try:
            handle = with_retry(
                lambda: self._orchestrator.create(cancellation=cancellation),
                self._create_retry,
                cancellation=cancellation,
                sleep=self._sleep,
                description="sandbox creation",
            )
        except RetryExhaustedError as exc:
            # Typed failures such as exhausted credentials keep their kind.
            if isinstance(exc.last_error, SandboxError):
                raise exc.last_error from None
            raise
        base_branch = repo.branch or self._default_branch(repo)
        repo_path = repo_path_for(handle.backend, repo.repo)
        try:
            handle.git.clone(
                GitCloneOptions(
                    url=repo.clone_url,
                    target_dir=repo_path,
                    branch=branch or base_branch,
                    base_branch=base_branch,
                    commit=repo.base_commit,
                    username=DEFAULT_USERNAME,
                    token=self._settings.github_token,
                )
            )
        except CancelledError:
            raise
        except Exception as exc:
            raise RepositorySetupError(
                f"Failed to clone {repo.full_name} into sandbox {handle.id}: {exc}"
            ) from exc
        self._ensure_auxiliary_repository_quietly(handle)
        return SandboxSession(
            handle=handle,
            repo_path=repo_path,
            dependencies_installed=False,
            recreated=True,
        )

    def _ensure_auxiliary_repository_quietly(self, handle: SandboxHandle) -> None:
        try:
            self._ensure_auxiliary_repository(handle)
        except CancelledError:
            raise
        except Exception as exc:
            logger.warning("Auxiliary repository setup failed in %s: %s", handle.id, exc)

    def _ensure_auxiliary_repository(self, handle: SandboxHandle) -> None:
        url = self._settings.skills_repository_url
        if not url:
            return
        if handle.backend == BackendType.LOCAL:
            root = str(Path(self._settings.working_directory).resolve())
        else:
            root = SANDBOX_ROOT_DIRS[handle.backend]
        target = posixpath.join(root, AUXILIARY_DIR)
        if handle.exists(target):
            return
        logger.info("Cloning auxiliary repository into %s", target)
        handle.git.clone(GitCloneOptions(url=url, target_dir=target, base_branch=DEFAULT_BASE_BRANCH))

    def _default_branch(self, repo: TargetRepository) -> str:
        if self._scm is None:
            return DEFAULT_BASE_BRANCH
        try:
            return self._scm.get_repo_default_branch(repo.full_name)
        except Exception as exc:
            logger.warning("Could not resolve default branch of %s: %s", repo.full_name, exc)
            return DEFAULT_BASE_BRANCH
