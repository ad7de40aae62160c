"""Code search tool using ripgrep, falling back to grep."""

from __future__ import annotations

import shlex

from pydantic import BaseModel, Field

from swe_sandbox.models.sandbox import ExecuteOptions
from swe_sandbox.models.tools import ToolResult
from swe_sandbox.tools.base import Tool, ToolContext, format_command_result

NOT_FOUND_EXIT_CODE = 127


class GrepArgs(BaseModel):
    query: str = Field(min_length=1, description="Regular expression to search for")
    path: str | None = Field(default=None, description="Directory or file to search")
    case_sensitive: bool = False
    include: str | None = Field(default=None, description="Glob of files to include, e.g. '*.py'")


def build_rg_command(args: GrepArgs, target: str) -> str:
    parts = ["rg", "--line-number", "--no-heading", "--color", "never"]
    if not args.case_sensitive:
        parts.append("-i")
    if args.include:
        parts.extend(["--glob", args.include])
    parts.extend(["-e", args.query, "--", target])
    return " ".join(shlex.quote(part) for part in parts)


def build_grep_command(args: GrepArgs, target: str) -> str:
    parts = ["grep", "-rn"]
    if not args.case_sensitive:
        parts.append("-i")
    if args.include:
        parts.append(f"--include={args.include}")
    parts.extend(["-e", args.query, "--", target])
    return " ".join(shlex.quote(part) for part in parts)


def run_grep(args: GrepArgs, context: ToolContext) -> ToolResult:
    target = context.resolve(args.path)
    options = ExecuteOptions(
        command=build_rg_command(args, target),
        workdir=context.repo_path,
        timeout_sec=context.default_timeout,
    )
    result = context.executor.execute_command(options, handle=context.handle)
    if result.exit_code == NOT_FOUND_EXIT_CODE:
        options = ExecuteOptions(
            command=build_grep_command(args, target),
            workdir=context.repo_path,
            timeout_sec=context.default_timeout,
        )
        result = context.executor.execute_command(options, handle=context.handle)
    if result.exit_code == 1 and not result.combined_output.strip():
        return ToolResult(content=f"No results found for {args.query!r}")
    return format_command_result(result, "Search")


GREP_TOOL = Tool(name="grep", args_model=GrepArgs, handler=run_grep)
