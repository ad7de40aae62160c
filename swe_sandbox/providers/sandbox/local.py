"""Local sandbox backend running commands as host subprocesses."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import shutil
import subprocess
import tempfile
import threading
import time
from typing import TYPE_CHECKING, Sequence
from uuid import uuid4

from swe_sandbox.errors import SandboxNotFoundError, SandboxOperationError
from swe_sandbox.models.sandbox import (
    BackendType,
    CreateOptions,
    ExecResult,
    ExecuteOptions,
    SandboxInfo,
    SandboxState,
)
from swe_sandbox.providers.sandbox.git import ShellGit
from swe_sandbox.runtime.cancellation import CancellationToken

if TYPE_CHECKING:
    from swe_sandbox.config import Settings

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124


@dataclass(frozen=True)
class _SandboxRecord:
    sandbox_id: str
    root: Path
    owned: bool


class LocalSandboxHandle:
    backend = BackendType.LOCAL

    def __init__(self, record: _SandboxRecord, default_timeout: int | None = None) -> None:
        self._record = record
        self._state = SandboxState.STARTED
        self._default_timeout = default_timeout
        self.git = ShellGit(self)

    @property
    def id(self) -> str:
        return self._record.sandbox_id

    @property
    def state(self) -> SandboxState:
        return self._state

    @property
    def root(self) -> Path:
        return self._record.root

    @property
    def owned(self) -> bool:
        return self._record.owned

    def execute_command(
        self,
        options: ExecuteOptions,
        cancellation: CancellationToken | None = None,
    ) -> ExecResult:
        if cancellation is not None:
            cancellation.raise_if_cancelled("local command")
        workdir = self._resolve_path(options.workdir) if options.workdir else self.root
        timeout = options.timeout_sec or self._default_timeout
        start = time.monotonic()
        try:
            process = subprocess.run(
                ["bash", "-c", options.command],
                cwd=workdir,
                env=self._merge_env(options.env),
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            duration_ms = int((time.monotonic() - start) * 1000)
            stdout = _decode(exc.stdout)
            stderr = _decode(exc.stderr) + f"\nCommand timed out after {timeout}s"
            return ExecResult.from_streams(TIMEOUT_EXIT_CODE, stdout, stderr, duration_ms)
        duration_ms = int((time.monotonic() - start) * 1000)
        return ExecResult.from_streams(
            process.returncode, process.stdout, process.stderr, duration_ms
        )

    def read_file(self, path: str) -> str:
        target = self._resolve_path(path)
        try:
            return target.read_text(encoding="utf-8")
        except OSError as exc:
            raise SandboxOperationError(f"Failed to read file {path}: {exc}") from exc

    def write_file(self, path: str, content: str) -> None:
        target = self._resolve_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def exists(self, path: str) -> bool:
        return self._resolve_path(path).exists()

    def mkdir(self, path: str) -> None:
        self._resolve_path(path).mkdir(parents=True, exist_ok=True)

    def remove(self, path: str) -> None:
        target = self._resolve_path(path)
        if target.is_dir():
            shutil.rmtree(target)
        elif target.exists():
            target.unlink()

    def start(self) -> None:
        self._state = SandboxState.STARTED

    def stop(self) -> None:
        self._state = SandboxState.STOPPED

    def extend_timeout(self, lifetime_seconds: int) -> None:
        return None

    def _resolve_path(self, path: str) -> Path:
        root = self.root.resolve()
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = root / candidate
        resolved = candidate.resolve()
        if root != resolved and root not in resolved.parents:
            raise ValueError(f"Path escapes sandbox: {path}")
        return resolved

    @staticmethod
    def _merge_env(env: dict[str, str] | None) -> dict[str, str]:
        merged = os.environ.copy()
        if env:
            merged.update(env)
        return merged


class LocalDriver:
    """Driver for local mode.

    ``create`` makes a scratch directory under ``base_dir``; ``open`` wraps an
    existing working directory, which is how local mode reuses the checkout the
    agent was started in.
    """

    backend = BackendType.LOCAL

    def __init__(self, base_dir: str | None = None, default_timeout: int | None = None) -> None:
        self._base_dir = Path(base_dir) if base_dir else None
        self._default_timeout = default_timeout
        self._sandboxes: dict[str, LocalSandboxHandle] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, api_key: str | None, settings: "Settings") -> "LocalDriver":
        return cls(default_timeout=settings.command_timeout_seconds)

    def create(
        self,
        options: CreateOptions | None = None,
        cancellation: CancellationToken | None = None,
    ) -> LocalSandboxHandle:
        if self._base_dir is None:
            self._base_dir = Path(tempfile.mkdtemp(prefix="swe-local-"))
        sandbox_id = f"local-{uuid4().hex[:8]}"
        root = self._base_dir / sandbox_id
        root.mkdir(parents=True, exist_ok=False)
        return self._register(_SandboxRecord(sandbox_id=sandbox_id, root=root, owned=True))

    def open(self, working_directory: str, sandbox_id: str | None = None) -> LocalSandboxHandle:
        """Wrap an existing directory, reusing the handle registered under ``sandbox_id``."""
        root = Path(working_directory).resolve()
        if not root.is_dir():
            raise SandboxOperationError(f"Local working directory does not exist: {root}")
        sandbox_id = sandbox_id or f"local-{uuid4().hex[:8]}"
        with self._lock:
            existing = self._sandboxes.get(sandbox_id)
        if existing is not None and existing.root == root:
            return existing
        return self._register(_SandboxRecord(sandbox_id=sandbox_id, root=root, owned=False))

    def get(self, sandbox_id: str) -> LocalSandboxHandle:
        with self._lock:
            handle = self._sandboxes.get(sandbox_id)
        if handle is None:
            raise SandboxNotFoundError(f"Unknown sandbox id: {sandbox_id}")
        return handle

    def stop(self, sandbox_id: str) -> None:
        self.get(sandbox_id).stop()

    def delete(self, sandbox_id: str) -> bool:
        with self._lock:
            handle = self._sandboxes.pop(sandbox_id, None)
        if handle is None:
            return False
        if handle.owned:
            shutil.rmtree(handle.root, ignore_errors=True)
        return True

    def list(self) -> Sequence[SandboxInfo]:
        with self._lock:
            handles = list(self._sandboxes.values())
        return [
            SandboxInfo(id=handle.id, backend=BackendType.LOCAL, state=handle.state)
            for handle in handles
        ]

    def _register(self, record: _SandboxRecord) -> LocalSandboxHandle:
        handle = LocalSandboxHandle(record, default_timeout=self._default_timeout)
        with self._lock:
            self._sandboxes[record.sandbox_id] = handle
        logger.debug("Registered local sandbox %s at %s", record.sandbox_id, record.root)
        return handle


def _decode(value: bytes | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
