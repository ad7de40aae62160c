"""Tool invocation models exchanged with the agent layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Sequence


class ToolStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class ResourceClass(str, Enum):
    SERIAL = "serial"
    PARALLEL = "parallel"


@dataclass(frozen=True)
class ToolInvocation:
    name: str
    args: Mapping[str, Any] = field(default_factory=dict)
    id: str = ""


@dataclass(frozen=True)
class ToolResult:
    """What a tool handler returns before the scheduler wraps it."""

    content: str
    status: ToolStatus = ToolStatus.SUCCESS
    updates: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolOutcome:
    invocation_id: str
    name: str
    content: str
    status: ToolStatus
    side_effect_updates: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchResult:
    outcomes: Sequence[ToolOutcome]
    updates: Mapping[str, str] = field(default_factory=dict)
    dependencies_installed: Optional[bool] = None
