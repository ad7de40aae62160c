"""Shell command tool."""

from __future__ import annotations

from pydantic import BaseModel, Field

from swe_sandbox.models.sandbox import ExecuteOptions
from swe_sandbox.models.tools import ToolResult
from swe_sandbox.tools.base import Tool, ToolContext, format_command_result


class ShellArgs(BaseModel):
    command: list[str] | str = Field(description="Command to run, as a string or list of words")
    workdir: str | None = Field(default=None, description="Working directory, relative to the repository")
    timeout: int | None = Field(default=None, gt=0, description="Timeout in seconds")


def run_shell(args: ShellArgs, context: ToolContext) -> ToolResult:
    command = args.command if isinstance(args.command, str) else " ".join(args.command)
    result = context.executor.execute_command(
        ExecuteOptions(
            command=command,
            workdir=context.resolve(args.workdir),
            timeout_sec=args.timeout or context.default_timeout,
        ),
        handle=context.handle,
    )
    return format_command_result(result, "Command")


SHELL_TOOL = Tool(
    name="shell",
    args_model=ShellArgs,
    handler=run_shell,
)
