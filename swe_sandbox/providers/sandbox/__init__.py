"""Sandbox backend drivers and interfaces."""

from swe_sandbox.providers.sandbox.base import (
    BackendDriver,
    GitOperations,
    SandboxHandle,
    repo_path_for,
)
from swe_sandbox.providers.sandbox.daytona import DaytonaDriver, DaytonaSandboxHandle
from swe_sandbox.providers.sandbox.e2b import E2BDriver, E2BSandboxHandle
from swe_sandbox.providers.sandbox.git import ShellGit
from swe_sandbox.providers.sandbox.keys import (
    CredentialPool,
    KeyEntry,
    KeyRotationManager,
    ProviderStats,
)
from swe_sandbox.providers.sandbox.local import LocalDriver, LocalSandboxHandle
from swe_sandbox.providers.sandbox.multi import MultiBackendOrchestrator
from swe_sandbox.providers.sandbox.options import (
    BackendOptions,
    DaytonaOptions,
    E2BOptions,
    LocalOptions,
    resolve_options_for,
)
from swe_sandbox.providers.sandbox.registry import DRIVER_FACTORIES, create_driver

__all__ = [
    "BackendDriver",
    "BackendOptions",
    "CredentialPool",
    "DRIVER_FACTORIES",
    "DaytonaDriver",
    "DaytonaOptions",
    "DaytonaSandboxHandle",
    "E2BDriver",
    "E2BOptions",
    "E2BSandboxHandle",
    "GitOperations",
    "KeyEntry",
    "KeyRotationManager",
    "LocalDriver",
    "LocalOptions",
    "LocalSandboxHandle",
    "MultiBackendOrchestrator",
    "ProviderStats",
    "SandboxHandle",
    "ShellGit",
    "create_driver",
    "repo_path_for",
    "resolve_options_for",
]
