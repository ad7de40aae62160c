"""Built-in tools exposed to the agent."""

from swe_sandbox.tools.base import Tool, ToolContext, format_command_result, truncate_output
from swe_sandbox.tools.grep import GREP_TOOL
from swe_sandbox.tools.install_dependencies import INSTALL_DEPENDENCIES_TOOL
from swe_sandbox.tools.shell import SHELL_TOOL
from swe_sandbox.tools.view import VIEW_TOOL

BUILTIN_TOOLS = (SHELL_TOOL, INSTALL_DEPENDENCIES_TOOL, VIEW_TOOL, GREP_TOOL)

__all__ = [
    "BUILTIN_TOOLS",
    "GREP_TOOL",
    "INSTALL_DEPENDENCIES_TOOL",
    "SHELL_TOOL",
    "Tool",
    "ToolContext",
    "VIEW_TOOL",
    "format_command_result",
    "truncate_output",
]
