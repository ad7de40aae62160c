"""Orchestrator spreading sandboxes across every configured backend and key."""

from __future__ import annotations

from collections import OrderedDict
import hashlib
import logging
import re
import threading
from typing import TYPE_CHECKING, Callable, Mapping, Sequence, TypeVar

from swe_sandbox.errors import (
    AllCredentialsExhaustedError,
    CancelledError,
    NoCredentialsError,
    SandboxNotFoundError,
)
from swe_sandbox.models.sandbox import BackendType, CreateOptions, SandboxInfo
from swe_sandbox.providers.sandbox.base import BackendDriver, SandboxHandle
from swe_sandbox.providers.sandbox.keys import KeyEntry, KeyRotationManager, mask_key
from swe_sandbox.providers.sandbox.options import without_backend_defaults
from swe_sandbox.providers.sandbox.registry import DRIVER_FACTORIES, DriverFactory
from swe_sandbox.runtime.cancellation import CancellationToken

if TYPE_CHECKING:
    from swe_sandbox.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)

MAX_REMEMBERED_ORIGINS = 1024


def key_fingerprint(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]


def probe_order(sandbox_id: str, backends: Sequence[BackendType]) -> list[BackendType]:
    """Order backends by how likely they are to own ``sandbox_id``.

    Daytona ids are UUIDs; E2B ids are short alphanumeric strings.
    """
    preferred = BackendType.DAYTONA if _UUID_RE.match(sandbox_id) else BackendType.E2B
    ordered = [backend for backend in backends if backend == preferred]
    return ordered + [backend for backend in backends if backend != preferred]


class MultiBackendOrchestrator:
    """BackendDriver facade over every (backend, key) pair in the credential pool."""

    def __init__(
        self,
        key_manager: KeyRotationManager,
        settings: "Settings",
        factories: Mapping[BackendType, DriverFactory] = DRIVER_FACTORIES,
        max_origins: int = MAX_REMEMBERED_ORIGINS,
    ) -> None:
        self._key_manager = key_manager
        self._settings = settings
        self._factories = factories
        self._drivers: dict[tuple[BackendType, str], BackendDriver] = {}
        # sandbox id -> key that last served it, least recently used first
        self._origins: OrderedDict[str, KeyEntry] = OrderedDict()
        self._max_origins = max_origins
        self._lock = threading.Lock()

    @property
    def key_manager(self) -> KeyRotationManager:
        return self._key_manager

    def create(
        self,
        options: CreateOptions | None = None,
        cancellation: CancellationToken | None = None,
    ) -> SandboxHandle:
        attempts = self._key_manager.total_key_count
        if attempts == 0:
            raise NoCredentialsError("No API keys available. Set DAYTONA_API_KEY and/or E2B_API_KEY.")
        generic = without_backend_defaults(options)
        last_error: BaseException | None = None
        for attempt in range(1, attempts + 1):
            if cancellation is not None:
                cancellation.raise_if_cancelled("sandbox creation")
            entry = self._key_manager.get_next()
            logger.info(
                "Creating sandbox with %s key %s (attempt %d/%d)",
                entry.backend.value,
                mask_key(entry.key),
                attempt,
                attempts,
            )
            try:
                handle = self._driver_for(entry).create(generic, cancellation=cancellation)
            except CancelledError:
                raise
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Sandbox creation failed with %s key %s: %s",
                    entry.backend.value,
                    mask_key(entry.key),
                    exc,
                )
                continue
            self._remember(handle.id, entry)
            logger.info("Created sandbox %s on %s", handle.id, entry.backend.value)
            return handle
        raise AllCredentialsExhaustedError(attempts, last_error) from last_error

    def get(self, sandbox_id: str) -> SandboxHandle:
        return self._probe(sandbox_id, lambda driver: driver.get(sandbox_id), "get")

    def stop(self, sandbox_id: str) -> None:
        self._probe(sandbox_id, lambda driver: driver.stop(sandbox_id), "stop")

    def delete(self, sandbox_id: str) -> bool:
        def attempt(driver: BackendDriver) -> bool:
            if not driver.delete(sandbox_id):
                raise SandboxNotFoundError(f"Sandbox {sandbox_id} not deleted")
            return True

        deleted = self._probe(sandbox_id, attempt, "delete")
        with self._lock:
            self._origins.pop(sandbox_id, None)
        return deleted

    def list(self) -> Sequence[SandboxInfo]:
        seen: dict[str, SandboxInfo] = {}
        for backend in self._key_manager.available_backends():
            for entry in self._key_manager.keys_for(backend):
                try:
                    infos = self._driver_for(entry).list()
                except Exception as exc:
                    logger.warning(
                        "Failed to list %s sandboxes with key %s: %s",
                        backend.value,
                        mask_key(entry.key),
                        exc,
                    )
                    continue
                for info in infos:
                    seen.setdefault(info.id, info)
        return list(seen.values())

    def clear_cache(self) -> None:
        with self._lock:
            self._drivers.clear()
            self._origins.clear()

    def _probe(self, sandbox_id: str, action: Callable[[BackendDriver], T], verb: str) -> T:
        last_error: BaseException | None = None
        for entry in self._candidates(sandbox_id):
            try:
                result = action(self._driver_for(entry))
            except CancelledError:
                raise
            except Exception as exc:
                last_error = exc
                logger.debug(
                    "%s of %s failed on %s key %s: %s",
                    verb,
                    sandbox_id,
                    entry.backend.value,
                    mask_key(entry.key),
                    exc,
                )
                continue
            self._remember(sandbox_id, entry)
            return result
        raise SandboxNotFoundError(
            f"Sandbox {sandbox_id} not found in any provider (last error: {last_error})"
        ) from last_error

    def _candidates(self, sandbox_id: str) -> list[KeyEntry]:
        candidates: list[KeyEntry] = []
        with self._lock:
            origin = self._origins.get(sandbox_id)
        if origin is not None:
            candidates.append(origin)
        backends = probe_order(sandbox_id, self._key_manager.available_backends())
        for backend in backends:
            for entry in self._key_manager.keys_for(backend):
                if entry != origin:
                    candidates.append(entry)
        return candidates

    def _driver_for(self, entry: KeyEntry) -> BackendDriver:
        cache_key = (entry.backend, key_fingerprint(entry.key))
        with self._lock:
            driver = self._drivers.get(cache_key)
            if driver is None:
                driver = self._factories[entry.backend](entry.key, self._settings)
                self._drivers[cache_key] = driver
        return driver

    def _remember(self, sandbox_id: str, entry: KeyEntry) -> None:
        with self._lock:
            self._origins[sandbox_id] = entry
            self._origins.move_to_end(sandbox_id)
            while len(self._origins) > self._max_origins:
                self._origins.popitem(last=False)
