"""Process-wide orchestration state, passed explicitly instead of module globals."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from swe_sandbox.config import Settings
from swe_sandbox.models.sandbox import BackendType
from swe_sandbox.providers.sandbox.base import BackendDriver
from swe_sandbox.providers.sandbox.keys import KeyRotationManager
from swe_sandbox.providers.sandbox.local import LocalDriver, LocalSandboxHandle
from swe_sandbox.providers.sandbox.multi import MultiBackendOrchestrator
from swe_sandbox.providers.sandbox.registry import DRIVER_FACTORIES, DriverFactory
from swe_sandbox.providers.scm import GitHubProvider, ScmProvider


@dataclass
class OrchestratorContext:
    settings: Settings
    key_manager: KeyRotationManager
    orchestrator: BackendDriver
    local_driver: LocalDriver = field(default_factory=LocalDriver)
    scm: ScmProvider | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        factories: Mapping[BackendType, DriverFactory] = DRIVER_FACTORIES,
        scm: ScmProvider | None = None,
    ) -> "OrchestratorContext":
        key_manager = KeyRotationManager.from_settings(settings)
        local_driver = LocalDriver(default_timeout=settings.command_timeout_seconds)
        orchestrator: BackendDriver
        if settings.is_local:
            orchestrator = local_driver
        else:
            orchestrator = MultiBackendOrchestrator(key_manager, settings, factories)
        if scm is None and settings.github_token:
            scm = GitHubProvider(token=settings.github_token)
        return cls(
            settings=settings,
            key_manager=key_manager,
            orchestrator=orchestrator,
            local_driver=local_driver,
            scm=scm,
        )

    @property
    def is_local(self) -> bool:
        return self.settings.is_local

    def local_handle(self, sandbox_id: str | None = None) -> LocalSandboxHandle:
        return self.local_driver.open(self.settings.working_directory, sandbox_id)

    def reset(self) -> None:
        """Rewind rotation cursors and drop cached drivers."""
        self.key_manager.reset()
        if isinstance(self.orchestrator, MultiBackendOrchestrator):
            self.orchestrator.clear_cache()
