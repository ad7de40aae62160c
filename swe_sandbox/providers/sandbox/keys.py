"""Credential pool and per-key round-robin rotation across backends."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import threading
from typing import TYPE_CHECKING, Mapping, Sequence

from swe_sandbox.errors import NoCredentialsError
from swe_sandbox.models.sandbox import BackendType

if TYPE_CHECKING:
    from swe_sandbox.config import Settings

logger = logging.getLogger(__name__)

ROTATION_ORDER = (BackendType.DAYTONA, BackendType.E2B)


def parse_keys(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(key.strip() for key in raw.split(",") if key.strip())


def mask_key(key: str) -> str:
    if len(key) <= 16:
        return f"{key[:4]}***"
    return f"{key[:8]}***{key[-4:]}"


@dataclass(frozen=True)
class KeyEntry:
    backend: BackendType
    key: str
    index: int

    def __repr__(self) -> str:
        return f"KeyEntry(backend={self.backend.value}, key={mask_key(self.key)}, index={self.index})"


@dataclass(frozen=True)
class ProviderStats:
    backend: BackendType
    total_keys: int
    current_index: int
    keys: tuple[str, ...]


@dataclass(frozen=True)
class CredentialPool:
    keys: Mapping[BackendType, tuple[str, ...]] = field(default_factory=dict)
    weights: Mapping[BackendType, int] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "CredentialPool":
        keys = {
            BackendType.DAYTONA: parse_keys(settings.daytona_api_keys),
            BackendType.E2B: parse_keys(settings.e2b_api_keys),
        }
        if settings.provider in {"daytona", "e2b"}:
            selected = BackendType(settings.provider)
            keys = {backend: values for backend, values in keys.items() if backend == selected}
        weights = {
            BackendType.DAYTONA: settings.daytona_key_weight,
            BackendType.E2B: settings.e2b_key_weight,
        }
        return cls(keys=keys, weights=weights)

    def backends(self) -> list[BackendType]:
        ordered = [backend for backend in ROTATION_ORDER if self.keys.get(backend)]
        extra = [b for b in self.keys if b not in ROTATION_ORDER and self.keys.get(b)]
        return ordered + extra

    def weight(self, backend: BackendType) -> int:
        return max(1, int(self.weights.get(backend, 1)))

    @property
    def total(self) -> int:
        return sum(len(self.keys.get(backend, ())) for backend in self.backends())


def build_slot_schedule(
    counts: Sequence[tuple[BackendType, int]],
) -> tuple[BackendType, ...]:
    """Interleave backends so each appears ``count`` times, evenly spaced.

    Uses smooth weighted round-robin: every step each backend gains its count,
    the highest total wins the slot and pays back the window length. Ties go
    to the backend listed first, so the schedule is deterministic.
    """
    total = sum(count for _, count in counts)
    current = {backend: 0 for backend, _ in counts}
    schedule: list[BackendType] = []
    for _ in range(total):
        for backend, count in counts:
            current[backend] += count
        chosen = max(counts, key=lambda item: current[item[0]])[0]
        current[chosen] -= total
        schedule.append(chosen)
    return tuple(schedule)


class KeyRotationManager:
    """Selects the next (backend, key) so every key gets an equal share of traffic."""

    def __init__(self, pool: CredentialPool) -> None:
        self._lock = threading.Lock()
        self._load(pool)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "KeyRotationManager":
        return cls(CredentialPool.from_settings(settings))

    @property
    def pool(self) -> CredentialPool:
        return self._pool

    @property
    def total_key_count(self) -> int:
        return self._pool.total

    def available_backends(self) -> list[BackendType]:
        return self._pool.backends()

    def get_next(self) -> KeyEntry:
        with self._lock:
            backends = self._pool.backends()
            if not backends:
                raise NoCredentialsError(
                    "No API keys available. Set DAYTONA_API_KEY and/or E2B_API_KEY."
                )
            if len(backends) == 1:
                backend = backends[0]
            else:
                backend = self._schedule[self._slot]
                self._slot = (self._slot + 1) % len(self._schedule)
            keys = self._pool.keys[backend]
            index = self._cursors[backend]
            self._cursors[backend] = (index + 1) % len(keys)
        logger.debug("Selected %s key %d (%s)", backend.value, index, mask_key(keys[index]))
        return KeyEntry(backend=backend, key=keys[index], index=index)

    def get_key(self, backend: BackendType, index: int) -> KeyEntry | None:
        keys = self._pool.keys.get(backend, ())
        if index < 0 or index >= len(keys):
            return None
        return KeyEntry(backend=backend, key=keys[index], index=index)

    def keys_for(self, backend: BackendType) -> list[KeyEntry]:
        return [
            KeyEntry(backend=backend, key=key, index=index)
            for index, key in enumerate(self._pool.keys.get(backend, ()))
        ]

    def get_stats(self) -> list[ProviderStats]:
        with self._lock:
            return [
                ProviderStats(
                    backend=backend,
                    total_keys=len(self._pool.keys[backend]),
                    current_index=self._cursors[backend],
                    keys=tuple(mask_key(key) for key in self._pool.keys[backend]),
                )
                for backend in self._pool.backends()
            ]

    def reset(self) -> None:
        with self._lock:
            self._slot = 0
            self._cursors = {backend: 0 for backend in self._pool.backends()}

    def reload(self, pool: CredentialPool) -> None:
        with self._lock:
            self._load(pool)
        logger.info("Reloaded credential pool with %d keys", pool.total)

    def _load(self, pool: CredentialPool) -> None:
        self._pool = pool
        self._slot = 0
        self._cursors = {backend: 0 for backend in pool.backends()}
        self._schedule = build_slot_schedule(
            [(backend, len(pool.keys[backend]) * pool.weight(backend)) for backend in pool.backends()]
        )
