"""File viewing tool; also feeds the document cache."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from swe_sandbox.models.tools import ToolResult
from swe_sandbox.tools.base import Tool, ToolContext

VIEW_HEAD_CHARS = 20000
VIEW_TAIL_CHARS = 20000


class ViewArgs(BaseModel):
    path: str = Field(description="File path, absolute or relative to the repository")
    view_range: list[int] | None = Field(
        default=None,
        description="Optional [start, end] line numbers, 1-based; end -1 reads to the end",
    )

    @field_validator("view_range")
    @classmethod
    def _check_range(cls, value: list[int] | None) -> list[int] | None:
        if value is None:
            return value
        if len(value) != 2 or value[0] < 1 or (value[1] != -1 and value[1] < value[0]):
            raise ValueError("view_range must be [start, end] with 1 <= start <= end, or end == -1")
        return value


def run_view(args: ViewArgs, context: ToolContext) -> ToolResult:
    path = context.resolve(args.path)
    raw = context.handle.read_file(path)
    lines = raw.splitlines()
    start, end = 1, len(lines)
    if args.view_range is not None:
        start = args.view_range[0]
        end = len(lines) if args.view_range[1] == -1 else min(args.view_range[1], len(lines))
    numbered = "\n".join(f"{number}\t{lines[number - 1]}" for number in range(start, end + 1))
    return ToolResult(content=numbered, updates={f"document:{path}": raw})


VIEW_TOOL = Tool(
    name="view",
    args_model=ViewArgs,
    handler=run_view,
    head_chars=VIEW_HEAD_CHARS,
    tail_chars=VIEW_TAIL_CHARS,
)
