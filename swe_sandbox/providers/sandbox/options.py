"""Backend-specific creation options resolved from generic CreateOptions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Mapping, Union

from swe_sandbox.models.sandbox import BackendType, CreateOptions

DEFAULT_E2B_TEMPLATES = frozenset({"", "base", "default"})


@dataclass(frozen=True)
class DaytonaOptions:
    snapshot: str = "open-swe-vcpu2-mem4-disk5"
    user: str = "daytona"
    env_vars: Mapping[str, str] = field(default_factory=dict)
    labels: Mapping[str, str] = field(default_factory=dict)
    auto_delete_minutes: int = 15
    backend = BackendType.DAYTONA


@dataclass(frozen=True)
class E2BOptions:
    template: str = "base"
    user: str = "user"
    envs: Mapping[str, str] = field(default_factory=dict)
    metadata: Mapping[str, str] = field(default_factory=dict)
    lifetime_seconds: int = 3600
    backend = BackendType.E2B

    @property
    def uses_default_template(self) -> bool:
        return self.template in DEFAULT_E2B_TEMPLATES


@dataclass(frozen=True)
class LocalOptions:
    env_vars: Mapping[str, str] = field(default_factory=dict)
    backend = BackendType.LOCAL


BackendOptions = Union[DaytonaOptions, E2BOptions, LocalOptions]


def without_backend_defaults(options: CreateOptions | None) -> CreateOptions:
    """Drop template and user so each backend falls back to its own defaults."""
    if options is None:
        return CreateOptions()
    return replace(options, template=None, user=None)


def resolve_options_for(
    backend: BackendType,
    options: CreateOptions,
    defaults: BackendOptions | None = None,
) -> BackendOptions:
    if backend == BackendType.DAYTONA:
        base = defaults if isinstance(defaults, DaytonaOptions) else DaytonaOptions()
        return DaytonaOptions(
            snapshot=options.template or base.snapshot,
            user=options.user or base.user,
            env_vars={**base.env_vars, **options.env_vars},
            labels={**base.labels, **options.metadata},
            auto_delete_minutes=options.auto_delete_minutes or base.auto_delete_minutes,
        )
    if backend == BackendType.E2B:
        base = defaults if isinstance(defaults, E2BOptions) else E2BOptions()
        lifetime = base.lifetime_seconds
        if options.lifetime_ms:
            lifetime = max(1, options.lifetime_ms // 1000)
        return E2BOptions(
            template=options.template or base.template,
            user=options.user or base.user,
            envs={**base.envs, **options.env_vars},
            metadata={**base.metadata, **options.metadata},
            lifetime_seconds=lifetime,
        )
    if backend == BackendType.LOCAL:
        base = defaults if isinstance(defaults, LocalOptions) else LocalOptions()
        return LocalOptions(env_vars={**base.env_vars, **options.env_vars})
    raise ValueError(f"Unsupported backend: {backend}")
