from __future__ import annotations

import threading
import time

from pydantic import BaseModel

from swe_sandbox.errors import SandboxOperationError
from swe_sandbox.models.sandbox import ExecuteOptions
from swe_sandbox.models.tools import ResourceClass, ToolInvocation, ToolResult, ToolStatus
from swe_sandbox.runtime.executor import CommandExecutor
from swe_sandbox.runtime.scheduler import ToolExecutionScheduler, ToolRegistry
from swe_sandbox.tools import Tool, ToolContext
from tests.fakes import FakeHandle, failed, ok


class TextArgs(BaseModel):
    text: str = ""


def _context(handle: FakeHandle | None = None) -> ToolContext:
    handle = handle or FakeHandle()
    return ToolContext(executor=CommandExecutor(handle=handle), handle=handle, repo_path="/home/daytona/widgets")


def _scheduler(*tools: Tool, handle: FakeHandle | None = None, **kwargs) -> ToolExecutionScheduler:
    registry = ToolRegistry.with_builtin_tools()
    for tool in tools:
        registry.register(tool)
    return ToolExecutionScheduler(registry, _context(handle), **kwargs)


class OverlapProbe:
    """Tracks how many handlers are running at once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def __call__(self, args: TextArgs, context: ToolContext) -> ToolResult:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(0.05)
        with self._lock:
            self.active -= 1
        return ToolResult(content=args.text)


def _shell(command: str, call_id: str) -> ToolInvocation:
    return ToolInvocation(name="shell", args={"command": command}, id=call_id)


def test_classification_follows_the_serial_table() -> None:
    scheduler = _scheduler()

    assert scheduler.classify(ToolInvocation("shell")) == ResourceClass.SERIAL
    assert scheduler.classify(ToolInvocation("install_dependencies")) == ResourceClass.SERIAL
    assert scheduler.classify(ToolInvocation("view")) == ResourceClass.PARALLEL
    assert scheduler.classify(ToolInvocation("grep")) == ResourceClass.PARALLEL


def test_outcomes_follow_request_order() -> None:
    def responder(options: ExecuteOptions):
        return ok(f"ran {options.command}\n")

    handle = FakeHandle(responder=responder)
    handle.files["/home/daytona/widgets/a.ts"] = "export const a = 1;\n"
    invocations = [
        _shell("npm run build", "build"),
        ToolInvocation(name="view", args={"path": "a.ts"}, id="view"),
        ToolInvocation(name="grep", args={"query": "x"}, id="grep"),
        _shell("npm test", "test"),
    ]

    result = _scheduler(handle=handle).run_batch(invocations)

    assert [outcome.invocation_id for outcome in result.outcomes] == ["build", "view", "grep", "test"]
    assert result.outcomes[0].content == "ran npm run build\n"
    assert result.outcomes[1].content == "1\texport const a = 1;"
    assert result.outcomes[2].content.startswith("ran rg ")
    assert result.outcomes[3].content == "ran npm test\n"
    shell_commands = [line for line in handle.command_lines() if line.startswith("npm")]
    assert shell_commands == ["npm run build", "npm test"]


def test_serial_tools_never_overlap() -> None:
    probe = OverlapProbe()
    serial = Tool(name="shell", args_model=TextArgs, handler=probe)

    result = _scheduler(serial).run_batch(
        [ToolInvocation(name="shell", args={"text": str(i)}, id=str(i)) for i in range(3)]
    )

    assert probe.peak == 1
    assert [outcome.content for outcome in result.outcomes] == ["0", "1", "2"]


def test_parallel_tools_run_concurrently() -> None:
    barrier = threading.Barrier(3, timeout=5)

    def meet(args: TextArgs, context: ToolContext) -> ToolResult:
        barrier.wait()
        return ToolResult(content=args.text)

    tool = Tool(name="meet", args_model=TextArgs, handler=meet)

    result = _scheduler(tool).run_batch(
        [ToolInvocation(name="meet", args={"text": str(i)}, id=str(i)) for i in range(3)]
    )

    assert all(outcome.status == ToolStatus.SUCCESS for outcome in result.outcomes)


def test_serial_chain_runs_alongside_parallel_tools() -> None:
    barrier = threading.Barrier(2, timeout=5)

    def meet(args: TextArgs, context: ToolContext) -> ToolResult:
        barrier.wait()
        return ToolResult(content=args.text)

    serial = Tool(name="shell", args_model=TextArgs, handler=meet)
    parallel = Tool(name="meet", args_model=TextArgs, handler=meet)

    result = _scheduler(serial, parallel).run_batch(
        [
            ToolInvocation(name="shell", args={"text": "serial"}, id="a"),
            ToolInvocation(name="meet", args={"text": "parallel"}, id="b"),
        ]
    )

    assert [outcome.content for outcome in result.outcomes] == ["serial", "parallel"]


def test_failures_stay_with_their_invocation() -> None:
    def responder(options: ExecuteOptions):
        if options.command == "false":
            return failed(1, "nope")
        return ok("fine\n")

    result = _scheduler(handle=FakeHandle(responder=responder)).run_batch(
        [_shell("false", "bad"), _shell("true", "good")]
    )

    bad, good = result.outcomes
    assert bad.status == ToolStatus.ERROR
    assert bad.content == "Command failed. Exit code: 1\nResult: nope"
    assert good.status == ToolStatus.SUCCESS
    assert good.content == "fine\n"


def test_unknown_tool_is_reported_without_running_anything() -> None:
    handle = FakeHandle()

    result = _scheduler(handle=handle).run_batch([ToolInvocation(name="teleport", id="x")])

    assert result.outcomes[0].content == "Unknown tool: teleport"
    assert result.outcomes[0].status == ToolStatus.ERROR
    assert handle.commands == []


def test_invalid_arguments_are_reported() -> None:
    result = _scheduler().run_batch([ToolInvocation(name="view", args={"path": 3, "view_range": [5]}, id="x")])

    outcome = result.outcomes[0]
    assert outcome.status == ToolStatus.ERROR
    assert outcome.content.startswith('Invalid arguments for tool "view":\n')


def test_handler_exceptions_become_error_outcomes() -> None:
    def explode(args: TextArgs, context: ToolContext) -> ToolResult:
        raise SandboxOperationError("sandbox went away")

    def crash(args: TextArgs, context: ToolContext) -> ToolResult:
        raise KeyError("missing")

    result = _scheduler(
        Tool(name="explode", args_model=TextArgs, handler=explode),
        Tool(name="crash", args_model=TextArgs, handler=crash),
    ).run_batch([ToolInvocation(name="explode", id="a"), ToolInvocation(name="crash", id="b")])

    assert result.outcomes[0].content == 'FAILED TO CALL TOOL: "explode"\n\nsandbox went away\n[operation]'
    assert result.outcomes[1].content == "FAILED TO CALL TOOL: \"crash\"\n\n'missing'"


def test_empty_content_is_replaced() -> None:
    def silent(args: TextArgs, context: ToolContext) -> ToolResult:
        return ToolResult(content="")

    def silent_failure(args: TextArgs, context: ToolContext) -> ToolResult:
        return ToolResult(content="", status=ToolStatus.ERROR)

    result = _scheduler(
        Tool(name="silent", args_model=TextArgs, handler=silent),
        Tool(name="silent_failure", args_model=TextArgs, handler=silent_failure),
    ).run_batch([ToolInvocation(name="silent"), ToolInvocation(name="silent_failure")])

    assert result.outcomes[0].content == "Tool call returned no result"
    assert result.outcomes[1].content == "Tool call failed"


def test_long_output_is_truncated_per_tool_window() -> None:
    def loud(args: TextArgs, context: ToolContext) -> ToolResult:
        return ToolResult(content="a" * 50 + "b" * 50)

    tool = Tool(name="loud", args_model=TextArgs, handler=loud, head_chars=10, tail_chars=5)

    content = _scheduler(tool).run_batch([ToolInvocation(name="loud")]).outcomes[0].content

    assert content == "a" * 10 + "\n\n... [85 characters truncated] ...\n\n" + "b" * 5


def test_updates_merge_in_request_order() -> None:
    def write(args: TextArgs, context: ToolContext) -> ToolResult:
        key, value = args.text.split("=")
        return ToolResult(content="ok", updates={key: value})

    tool = Tool(name="write", args_model=TextArgs, handler=write)

    result = _scheduler(tool).run_batch(
        [
            ToolInvocation(name="write", args={"text": "doc=first"}),
            ToolInvocation(name="write", args={"text": "other=x"}),
            ToolInvocation(name="write", args={"text": "doc=second"}),
        ]
    )

    assert result.updates == {"doc": "second", "other": "x"}


def test_view_records_document_updates() -> None:
    handle = FakeHandle()
    handle.files["/home/daytona/widgets/app.py"] = "print('hi')\n"

    result = _scheduler(handle=handle).run_batch([ToolInvocation(name="view", args={"path": "app.py"})])

    assert result.updates == {"document:/home/daytona/widgets/app.py": "print('hi')\n"}


def test_dependencies_installed_reflects_the_last_install() -> None:
    def responder(options: ExecuteOptions):
        return failed(1, "ERESOLVE") if options.command == "npm install" else ok("added 10 packages")

    scheduler = _scheduler(handle=FakeHandle(responder=responder))

    assert scheduler.run_batch([_shell("ls", "a")]).dependencies_installed is None
    mixed = scheduler.run_batch(
        [
            ToolInvocation(name="install_dependencies", args={"command": "npm install"}),
            ToolInvocation(name="install_dependencies", args={"command": ["npm", "ci"]}),
        ]
    )
    assert mixed.dependencies_installed is True
    failed_last = scheduler.run_batch(
        [ToolInvocation(name="install_dependencies", args={"command": ["npm", "install"]})]
    )
    assert failed_last.dependencies_installed is False


def test_placeholder_signature_is_added_to_one_parallel_call() -> None:
    seen: list[dict] = []
    lock = threading.Lock()

    class SignedArgs(BaseModel):
        text: str = ""
        signature: str | None = None

    def record(args: SignedArgs, context: ToolContext) -> ToolResult:
        with lock:
            seen.append({"text": args.text, "signature": args.signature})
        return ToolResult(content=args.text)

    tool = Tool(name="record", args_model=SignedArgs, handler=record)
    invocations = [ToolInvocation(name="record", args={"text": str(i)}) for i in range(3)]

    _scheduler(tool, placeholder_signature="sig").run_batch(invocations)

    signed = sorted(entry["text"] for entry in seen if entry["signature"] == "sig")
    assert signed == ["0"]
    assert "signature" not in invocations[0].args


def test_placeholder_signature_skips_single_calls() -> None:
    seen: list[str | None] = []

    class SignedArgs(BaseModel):
        signature: str | None = None

    def record(args: SignedArgs, context: ToolContext) -> ToolResult:
        seen.append(args.signature)
        return ToolResult(content="ok")

    tool = Tool(name="record", args_model=SignedArgs, handler=record)

    _scheduler(tool, placeholder_signature="sig").run_batch([ToolInvocation(name="record")])

    assert seen == [None]
