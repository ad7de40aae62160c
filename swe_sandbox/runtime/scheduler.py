"""Batch scheduler running serial tools one at a time and the rest concurrently."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
import logging
from typing import Iterable, Mapping, Sequence

from pydantic import ValidationError

from swe_sandbox.errors import SandboxError
from swe_sandbox.models.tools import (
    BatchResult,
    ResourceClass,
    ToolInvocation,
    ToolOutcome,
    ToolStatus,
)
from swe_sandbox.tools import BUILTIN_TOOLS, Tool, ToolContext, truncate_output

logger = logging.getLogger(__name__)

# Tools that exhausted sandbox memory when run side by side.
SERIAL_TOOLS = frozenset({"shell", "install_dependencies"})
INSTALL_DEPENDENCIES = "install_dependencies"


class ToolRegistry:
    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    @classmethod
    def with_builtin_tools(cls) -> "ToolRegistry":
        return cls(BUILTIN_TOOLS)

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    @property
    def names(self) -> list[str]:
        return sorted(self._tools)


class ToolExecutionScheduler:
    def __init__(
        self,
        registry: ToolRegistry,
        context: ToolContext,
        *,
        serial_tools: frozenset[str] = SERIAL_TOOLS,
        placeholder_signature: str | None = None,
    ) -> None:
        self._registry = registry
        self._context = context
        self._serial_tools = serial_tools
        self._placeholder_signature = placeholder_signature

    def classify(self, invocation: ToolInvocation) -> ResourceClass:
        if invocation.name in self._serial_tools:
            return ResourceClass.SERIAL
        return ResourceClass.PARALLEL

    def run_batch(self, invocations: Sequence[ToolInvocation]) -> BatchResult:
        """Run every invocation and return one outcome per invocation, in request order."""
        serial = [inv for inv in invocations if self.classify(inv) == ResourceClass.SERIAL]
        parallel = self._apply_placeholder(
            [inv for inv in invocations if self.classify(inv) == ResourceClass.PARALLEL]
        )
        logger.info(
            "Running batch of %d tool calls (%d serial, %d parallel)",
            len(invocations),
            len(serial),
            len(parallel),
        )

        serial_outcomes: list[ToolOutcome] = []
        parallel_outcomes: list[ToolOutcome] = []
        workers = len(parallel) + (1 if serial else 0)
        if workers:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                serial_future = pool.submit(self._run_serial, serial) if serial else None
                futures = [pool.submit(self._execute, inv) for inv in parallel]
                parallel_outcomes = [future.result() for future in futures]
                if serial_future is not None:
                    serial_outcomes = serial_future.result()

        outcomes: list[ToolOutcome] = []
        serial_index = parallel_index = 0
        for invocation in invocations:
            if self.classify(invocation) == ResourceClass.SERIAL:
                outcomes.append(serial_outcomes[serial_index])
                serial_index += 1
            else:
                outcomes.append(parallel_outcomes[parallel_index])
                parallel_index += 1

        updates: dict[str, str] = {}
        for outcome in outcomes:
            updates.update(outcome.side_effect_updates)

        return BatchResult(
            outcomes=outcomes,
            updates=updates,
            dependencies_installed=_dependencies_installed(outcomes),
        )

    def _run_serial(self, invocations: Sequence[ToolInvocation]) -> list[ToolOutcome]:
        return [self._execute(invocation) for invocation in invocations]

    def _execute(self, invocation: ToolInvocation) -> ToolOutcome:
        tool = self._registry.get(invocation.name)
        if tool is None:
            return _outcome(invocation, f"Unknown tool: {invocation.name}", ToolStatus.ERROR)
        try:
            args = tool.args_model.model_validate(dict(invocation.args))
        except ValidationError as exc:
            return _outcome(
                invocation,
                f'Invalid arguments for tool "{invocation.name}":\n{exc}',
                ToolStatus.ERROR,
            )
        try:
            result = tool.handler(args, self._context)
        except Exception as exc:
            logger.error("Tool %s (%s) failed: %s", invocation.name, invocation.id, exc)
            return _outcome(invocation, _failure_message(invocation.name, exc), ToolStatus.ERROR)

        content = result.content
        if not content:
            if result.status == ToolStatus.SUCCESS:
                content = "Tool call returned no result"
            else:
                content = "Tool call failed"
        return _outcome(
            invocation,
            truncate_output(content, tool.head_chars, tool.tail_chars),
            result.status,
            result.updates,
        )

    def _apply_placeholder(self, parallel: list[ToolInvocation]) -> list[ToolInvocation]:
        if not self._placeholder_signature or len(parallel) < 2:
            return parallel
        for index, invocation in enumerate(parallel):
            if "signature" not in invocation.args:
                args = {**invocation.args, "signature": self._placeholder_signature}
                parallel[index] = replace(invocation, args=args)
                break
        return parallel


def _outcome(
    invocation: ToolInvocation,
    content: str,
    status: ToolStatus,
    updates: Mapping[str, str] | None = None,
) -> ToolOutcome:
    return ToolOutcome(
        invocation_id=invocation.id,
        name=invocation.name,
        content=content,
        status=status,
        side_effect_updates=dict(updates or {}),
    )


def _failure_message(name: str, error: Exception) -> str:
    message = f'FAILED TO CALL TOOL: "{name}"\n\n{error}'
    if isinstance(error, SandboxError):
        message = f"{message}\n[{error.kind}]"
    return message


def _dependencies_installed(outcomes: Sequence[ToolOutcome]) -> bool | None:
    installs = [outcome for outcome in outcomes if outcome.name == INSTALL_DEPENDENCIES]
    if not installs:
        return None
    return installs[-1].status == ToolStatus.SUCCESS
