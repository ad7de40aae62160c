from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from swe_sandbox.config import configure_logging, load_settings
from swe_sandbox.errors import SandboxError
from swe_sandbox.models.scm import TargetRepository
from swe_sandbox.models.tools import ToolInvocation
from swe_sandbox.providers.sandbox.base import SANDBOX_ROOT_DIRS, SandboxHandle, repo_path_for
from swe_sandbox.runtime.context import OrchestratorContext
from swe_sandbox.runtime.executor import CommandExecutor
from swe_sandbox.runtime.lifecycle import SandboxLifecycleCoordinator
from swe_sandbox.runtime.scheduler import ToolExecutionScheduler, ToolRegistry
from swe_sandbox.tools import ToolContext

_STATUS_BY_KIND = {
    "not_found": 404,
    "cancelled": 409,
    "unrecoverable_state": 409,
    "no_credentials": 503,
    "credentials_exhausted": 503,
    "transient": 503,
    "retry_exhausted": 502,
    "repository_setup": 502,
    "operation": 502,
}


class SessionRequest(BaseModel):
    session_id: str | None = None
    owner: str
    repo: str
    branch: str | None = None
    base_branch: str | None = None
    base_commit: str | None = None


class InvocationRequest(BaseModel):
    id: str = ""
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class BatchRequest(BaseModel):
    invocations: list[InvocationRequest]
    repo: str | None = None


def create_app(context: OrchestratorContext | None = None) -> FastAPI:
    app = FastAPI(title="swe-sandbox")
    app.state.context = context

    def get_context() -> OrchestratorContext:
        if app.state.context is None:
            settings = load_settings()
            configure_logging(settings.log_level)
            app.state.context = OrchestratorContext.from_settings(settings)
        return app.state.context

    @app.exception_handler(SandboxError)
    def sandbox_error_handler(request: Request, exc: SandboxError) -> JSONResponse:
        return JSONResponse(
            status_code=_STATUS_BY_KIND.get(exc.kind, 500),
            content={"error": exc.kind, "detail": str(exc)},
        )

    @app.get("/health")
    def health_check() -> dict:
        return {"status": "ok"}

    @app.get("/providers/stats")
    def provider_stats() -> list[dict]:
        return [
            {
                "provider": stats.backend.value,
                "total_keys": stats.total_keys,
                "current_index": stats.current_index,
                "keys": list(stats.keys),
            }
            for stats in get_context().key_manager.get_stats()
        ]

    @app.post("/sessions")
    def open_session(body: SessionRequest) -> dict:
        ctx = get_context()
        coordinator = SandboxLifecycleCoordinator.from_context(ctx)
        repo = TargetRepository(
            owner=body.owner,
            repo=body.repo,
            branch=body.base_branch,
            base_commit=body.base_commit,
        )
        session = coordinator.get_or_recreate(body.session_id, repo, body.branch)
        return {
            "session_id": session.handle.id,
            "state": session.handle.state.value,
            "backend": session.handle.backend.value,
            "repo_path": session.repo_path,
            "dependencies_installed": session.dependencies_installed,
        }

    @app.post("/sessions/{session_id}/batches")
    def run_batch(session_id: str, body: BatchRequest) -> dict:
        ctx = get_context()
        settings = ctx.settings
        handle: SandboxHandle
        if ctx.is_local:
            local_handle = ctx.local_handle(session_id)
            handle = local_handle
            repo_path = str(local_handle.root)
            executor = CommandExecutor(
                local_runner=local_handle,
                default_timeout=settings.command_timeout_seconds,
            )
        else:
            handle = ctx.orchestrator.get(session_id)
            repo_path = (
                repo_path_for(handle.backend, body.repo)
                if body.repo
                else SANDBOX_ROOT_DIRS[handle.backend]
            )
            executor = CommandExecutor(
                handle=handle,
                resolve_handle=ctx.orchestrator.get,
                default_timeout=settings.command_timeout_seconds,
            )
        scheduler = ToolExecutionScheduler(
            ToolRegistry.with_builtin_tools(),
            ToolContext(
                executor=executor,
                handle=handle,
                repo_path=repo_path,
                default_timeout=settings.command_timeout_seconds,
            ),
            placeholder_signature=settings.placeholder_signature,
        )
        result = scheduler.run_batch(
            [ToolInvocation(name=inv.name, args=inv.args, id=inv.id) for inv in body.invocations]
        )
        return {
            "outcomes": [
                {
                    "id": outcome.invocation_id,
                    "name": outcome.name,
                    "content": outcome.content,
                    "status": outcome.status.value,
                }
                for outcome in result.outcomes
            ],
            "updates": dict(result.updates),
            "dependencies_installed": result.dependencies_installed,
        }

    return app


app = create_app()
