"""Dependency installation tool, given extra time over regular commands."""

from __future__ import annotations

from pydantic import BaseModel, Field

from swe_sandbox.models.sandbox import ExecuteOptions
from swe_sandbox.models.tools import ToolResult
from swe_sandbox.tools.base import Tool, ToolContext, format_command_result

TIMEOUT_MULTIPLIER = 2.5


class InstallDependenciesArgs(BaseModel):
    command: list[str] | str = Field(description="Install command, e.g. ['npm', 'install']")
    workdir: str | None = Field(default=None, description="Working directory, relative to the repository")


def run_install_dependencies(args: InstallDependenciesArgs, context: ToolContext) -> ToolResult:
    command = args.command if isinstance(args.command, str) else " ".join(args.command)
    result = context.executor.execute_command(
        ExecuteOptions(
            command=command,
            workdir=context.resolve(args.workdir),
            timeout_sec=int(context.default_timeout * TIMEOUT_MULTIPLIER),
        ),
        handle=context.handle,
    )
    return format_command_result(result, "Dependency installation")


INSTALL_DEPENDENCIES_TOOL = Tool(
    name="install_dependencies",
    args_model=InstallDependenciesArgs,
    handler=run_install_dependencies,
)
