"""Provider package for sandbox backends and SCM integrations."""

from swe_sandbox.providers.sandbox import (
    BackendDriver,
    DaytonaDriver,
    E2BDriver,
    LocalDriver,
    MultiBackendOrchestrator,
    SandboxHandle,
)
from swe_sandbox.providers.scm import GitHubProvider, ScmProvider

__all__ = [
    "BackendDriver",
    "DaytonaDriver",
    "E2BDriver",
    "GitHubProvider",
    "LocalDriver",
    "MultiBackendOrchestrator",
    "SandboxHandle",
    "ScmProvider",
]
