"""E2B sandbox backend."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Sequence

from e2b import Sandbox

from swe_sandbox.errors import SandboxOperationError
from swe_sandbox.models.sandbox import (
    BackendType,
    CreateOptions,
    ExecResult,
    ExecuteOptions,
    SandboxInfo,
    SandboxState,
)
from swe_sandbox.providers.sandbox.base import SANDBOX_ROOT_DIRS
from swe_sandbox.providers.sandbox.git import ShellGit
from swe_sandbox.providers.sandbox.options import E2BOptions, resolve_options_for
from swe_sandbox.runtime.cancellation import CancellationToken
from swe_sandbox.runtime.retry import RetryPolicy, with_retry

if TYPE_CHECKING:
    from swe_sandbox.config import Settings

logger = logging.getLogger(__name__)

ROOT_DIR = SANDBOX_ROOT_DIRS[BackendType.E2B]
EXEC_RETRY = RetryPolicy(max_attempts=5, base_delay=5.0, max_delay=60.0)
CREATE_RETRY = RetryPolicy(max_attempts=3, base_delay=5.0, max_delay=60.0)


def _command_exit_result(exc: BaseException, duration_ms: int) -> ExecResult | None:
    """The SDK raises for non-zero exits; recover the result it carries."""
    exit_code = getattr(exc, "exit_code", None)
    if not isinstance(exit_code, int):
        return None
    return ExecResult.from_streams(
        exit_code,
        getattr(exc, "stdout", "") or "",
        getattr(exc, "stderr", "") or "",
        duration_ms,
    )


class E2BSandboxHandle:
    backend = BackendType.E2B

    def __init__(
        self,
        sandbox: Any,
        retry_policy: RetryPolicy = EXEC_RETRY,
        sleep: Callable[[float], None] = time.sleep,
        default_timeout: int | None = None,
    ) -> None:
        self._sandbox = sandbox
        self._retry_policy = retry_policy
        self._sleep = sleep
        self._default_timeout = default_timeout
        self._state = SandboxState.STARTED
        self.git = ShellGit(self)

    @property
    def id(self) -> str:
        return self._sandbox.sandbox_id

    @property
    def state(self) -> SandboxState:
        return self._state

    def execute_command(
        self,
        options: ExecuteOptions,
        cancellation: CancellationToken | None = None,
    ) -> ExecResult:
        workdir = options.workdir or ROOT_DIR
        envs = dict(options.env) or None
        timeout = options.timeout_sec or self._default_timeout
        start = time.monotonic()

        def call() -> ExecResult:
            try:
                result = self._sandbox.commands.run(
                    options.command, cwd=workdir, envs=envs, timeout=timeout
                )
            except Exception as exc:
                exit_result = _command_exit_result(exc, int((time.monotonic() - start) * 1000))
                if exit_result is None:
                    raise
                return exit_result
            return ExecResult.from_streams(
                result.exit_code,
                result.stdout,
                result.stderr,
                int((time.monotonic() - start) * 1000),
            )

        return with_retry(
            call,
            self._retry_policy,
            cancellation=cancellation,
            sleep=self._sleep,
            description=f"E2B exec on {self.id}",
        )

    def read_file(self, path: str) -> str:
        try:
            return self._sandbox.files.read(path)
        except Exception as exc:
            raise SandboxOperationError(f"Failed to read file {path}: {exc}") from exc

    def write_file(self, path: str, content: str) -> None:
        try:
            self._sandbox.files.write(path, content)
        except Exception as exc:
            raise SandboxOperationError(f"Failed to write file {path}: {exc}") from exc

    def exists(self, path: str) -> bool:
        try:
            return bool(self._sandbox.files.exists(path))
        except Exception as exc:
            raise SandboxOperationError(f"Failed to check {path}: {exc}") from exc

    def mkdir(self, path: str) -> None:
        try:
            self._sandbox.files.make_dir(path)
        except Exception as exc:
            raise SandboxOperationError(f"Failed to create directory {path}: {exc}") from exc

    def remove(self, path: str) -> None:
        try:
            self._sandbox.files.remove(path)
        except Exception as exc:
            raise SandboxOperationError(f"Failed to remove {path}: {exc}") from exc

    def start(self) -> None:
        # E2B sandboxes run until killed or timed out.
        self._state = SandboxState.STARTED

    def stop(self) -> None:
        logger.info("Killing E2B sandbox %s", self.id)
        self._sandbox.kill()
        self._state = SandboxState.STOPPED

    def extend_timeout(self, lifetime_seconds: int) -> None:
        try:
            self._sandbox.set_timeout(lifetime_seconds)
        except Exception as exc:
            logger.warning("Failed to extend E2B sandbox %s lifetime: %s", self.id, exc)


class E2BDriver:
    backend = BackendType.E2B

    def __init__(
        self,
        api_key: str | None = None,
        defaults: E2BOptions | None = None,
        sandbox_cls: Any = Sandbox,
        exec_retry: RetryPolicy = EXEC_RETRY,
        create_retry: RetryPolicy = CREATE_RETRY,
        sleep: Callable[[float], None] = time.sleep,
        default_timeout: int | None = None,
    ) -> None:
        self._api_key = api_key
        self._defaults = defaults or E2BOptions()
        self._sandbox_cls = sandbox_cls
        self._exec_retry = exec_retry
        self._create_retry = create_retry
        self._sleep = sleep
        self._default_timeout = default_timeout

    @classmethod
    def from_settings(cls, api_key: str | None, settings: "Settings") -> "E2BDriver":
        defaults = E2BOptions(
            template=settings.e2b_template,
            user=settings.e2b_user,
            lifetime_seconds=settings.lifetime_seconds,
        )
        return cls(
            api_key=api_key,
            defaults=defaults,
            default_timeout=settings.command_timeout_seconds,
        )

    def create(
        self,
        options: CreateOptions | None = None,
        cancellation: CancellationToken | None = None,
    ) -> E2BSandboxHandle:
        resolved = resolve_options_for(BackendType.E2B, options or CreateOptions(), self._defaults)
        kwargs: dict[str, Any] = {
            "timeout": resolved.lifetime_seconds,
            "envs": dict(resolved.envs),
            "metadata": dict(resolved.metadata),
            "api_key": self._api_key,
        }
        if not resolved.uses_default_template:
            kwargs["template"] = resolved.template
        sandbox = with_retry(
            lambda: self._sandbox_cls.create(**kwargs),
            self._create_retry,
            cancellation=cancellation,
            sleep=self._sleep,
            description="E2B sandbox creation",
        )
        logger.info("Created E2B sandbox %s from template %s", sandbox.sandbox_id, resolved.template)
        return self._wrap(sandbox)

    def get(self, sandbox_id: str) -> E2BSandboxHandle:
        sandbox = with_retry(
            lambda: self._sandbox_cls.connect(sandbox_id, api_key=self._api_key),
            self._create_retry,
            sleep=self._sleep,
            description=f"E2B reconnect to {sandbox_id}",
        )
        handle = self._wrap(sandbox)
        handle.extend_timeout(self._defaults.lifetime_seconds)
        return handle

    def stop(self, sandbox_id: str) -> None:
        if not self.delete(sandbox_id):
            raise SandboxOperationError(f"Failed to stop E2B sandbox {sandbox_id}")

    def delete(self, sandbox_id: str) -> bool:
        try:
            killed = self._sandbox_cls.kill(sandbox_id, api_key=self._api_key)
        except Exception as exc:
            logger.error("Failed to kill E2B sandbox %s: %s", sandbox_id, exc)
            return False
        if killed is False:
            return False
        logger.info("Killed E2B sandbox %s", sandbox_id)
        return True

    def list(self) -> Sequence[SandboxInfo]:
        listing = self._sandbox_cls.list(api_key=self._api_key)
        if hasattr(listing, "next_items"):
            items: list[Any] = []
            while True:
                items.extend(listing.next_items())
                if not getattr(listing, "has_next", False):
                    break
        else:
            items = list(listing)
        seen: dict[str, SandboxInfo] = {}
        for item in items:
            if item.sandbox_id in seen:
                continue
            seen[item.sandbox_id] = SandboxInfo(
                id=item.sandbox_id,
                backend=BackendType.E2B,
                state=SandboxState.parse(getattr(item, "state", None) or "started"),
                template=getattr(item, "template_id", None),
                created_at=_as_text(getattr(item, "started_at", None)),
                metadata=dict(getattr(item, "metadata", None) or {}),
            )
        return list(seen.values())

    def _wrap(self, sandbox: Any) -> E2BSandboxHandle:
        return E2BSandboxHandle(
            sandbox,
            retry_policy=self._exec_retry,
            sleep=self._sleep,
            default_timeout=self._default_timeout,
        )


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
