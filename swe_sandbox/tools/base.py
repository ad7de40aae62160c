"""Shared plumbing for tools run by the scheduler."""

from __future__ import annotations

from dataclasses import dataclass
import posixpath
from typing import Any, Callable

from pydantic import BaseModel

from swe_sandbox.models.sandbox import ExecResult
from swe_sandbox.models.tools import ToolResult, ToolStatus
from swe_sandbox.providers.sandbox.base import SandboxHandle
from swe_sandbox.runtime.executor import DEFAULT_TIMEOUT_S, CommandExecutor

DEFAULT_HEAD_CHARS = 2500
DEFAULT_TAIL_CHARS = 2500


@dataclass
class ToolContext:
    executor: CommandExecutor
    handle: SandboxHandle
    repo_path: str
    default_timeout: int = DEFAULT_TIMEOUT_S

    def resolve(self, path: str | None) -> str:
        if not path:
            return self.repo_path
        if posixpath.isabs(path):
            return path
        return posixpath.join(self.repo_path, path)


@dataclass(frozen=True)
class Tool:
    name: str
    args_model: type[BaseModel]
    handler: Callable[[Any, ToolContext], ToolResult]
    head_chars: int = DEFAULT_HEAD_CHARS
    tail_chars: int = DEFAULT_TAIL_CHARS


def truncate_output(content: str, head_chars: int, tail_chars: int) -> str:
    if len(content) <= head_chars + tail_chars:
        return content
    omitted = len(content) - head_chars - tail_chars
    tail = content[-tail_chars:] if tail_chars else ""
    return f"{content[:head_chars]}\n\n... [{omitted} characters truncated] ...\n\n{tail}"


def format_command_result(result: ExecResult, action: str) -> ToolResult:
    output = result.combined_output or result.stdout or result.stderr
    if result.exit_code == 0:
        return ToolResult(content=output)
    if result.exit_code == -1:
        return ToolResult(
            content=(
                f"{action} failed due to a sandbox issue (exit code -1). The sandbox "
                f"may have disconnected or hit a timeout or resource limit.\n{output}"
            ),
            status=ToolStatus.ERROR,
        )
    return ToolResult(
        content=f"{action} failed. Exit code: {result.exit_code}\nResult: {output}",
        status=ToolStatus.ERROR,
    )
