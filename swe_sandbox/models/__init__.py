"""Shared data models for the swe-sandbox application."""

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
from swe_sandbox.models.scm import TargetRepository
from swe_sandbox.models.tools import (
    BatchResult,
    ResourceClass,
    ToolInvocation,
    ToolOutcome,
    ToolResult,
    ToolStatus,
)

__all__ = [
    "BackendType",
    "BatchResult",
    "CreateOptions",
    "ExecResult",
    "ExecuteOptions",
    "GitCloneOptions",
    "GitCommitOptions",
    "GitOperationOptions",
    "ResourceClass",
    "SandboxInfo",
    "SandboxState",
    "TargetRepository",
    "ToolInvocation",
    "ToolOutcome",
    "ToolResult",
    "ToolStatus",
]
