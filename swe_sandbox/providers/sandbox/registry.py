"""Registered driver factories, one per backend."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Mapping

from swe_sandbox.models.sandbox import BackendType
from swe_sandbox.providers.sandbox.base import BackendDriver
from swe_sandbox.providers.sandbox.daytona import DaytonaDriver
from swe_sandbox.providers.sandbox.e2b import E2BDriver
from swe_sandbox.providers.sandbox.local import LocalDriver

if TYPE_CHECKING:
    from swe_sandbox.config import Settings

DriverFactory = Callable[[str | None, "Settings"], BackendDriver]

DRIVER_FACTORIES: Mapping[BackendType, DriverFactory] = {
    BackendType.DAYTONA: DaytonaDriver.from_settings,
    BackendType.E2B: E2BDriver.from_settings,
    BackendType.LOCAL: LocalDriver.from_settings,
}


def create_driver(
    backend: BackendType,
    api_key: str | None,
    settings: "Settings",
    factories: Mapping[BackendType, DriverFactory] = DRIVER_FACTORIES,
) -> BackendDriver:
    try:
        factory = factories[backend]
    except KeyError as exc:
        raise ValueError(f"No driver registered for backend: {backend}") from exc
    return factory(api_key, settings)
