from __future__ import annotations

import pytest

from swe_sandbox.config import Settings
from swe_sandbox.errors import NoCredentialsError
from swe_sandbox.models.sandbox import BackendType
from swe_sandbox.providers.sandbox.keys import (
    CredentialPool,
    KeyRotationManager,
    build_slot_schedule,
    mask_key,
    parse_keys,
)

DAYTONA = BackendType.DAYTONA
E2B = BackendType.E2B


def _manager(daytona: int, e2b: int) -> KeyRotationManager:
    return KeyRotationManager(
        CredentialPool(
            keys={
                DAYTONA: tuple(f"daytona-key-{i}" for i in range(daytona)),
                E2B: tuple(f"e2b-key-{i}" for i in range(e2b)),
            }
        )
    )


def test_parse_keys_trims_and_drops_empty_entries() -> None:
    assert parse_keys(" k1, ,k2 ,,") == ("k1", "k2")
    assert parse_keys("") == ()
    assert parse_keys(None) == ()


def test_mask_key_hides_the_middle_of_long_keys() -> None:
    assert mask_key("dtn_1234567890abcdefXYZ9") == "dtn_1234***XYZ9"
    assert mask_key("short-key") == "shor***"


def test_single_backend_cycles_keys_round_robin() -> None:
    manager = _manager(daytona=0, e2b=3)

    indices = [manager.get_next().index for _ in range(7)]

    assert indices == [0, 1, 2, 0, 1, 2, 0]


def test_example_pool_touches_every_key_once() -> None:
    manager = KeyRotationManager(CredentialPool(keys={DAYTONA: ("k1",), E2B: ("k1", "k2")}))

    selected = [manager.get_next() for _ in range(3)]

    assert sorted((entry.backend.value, entry.key) for entry in selected) == [
        ("daytona", "k1"),
        ("e2b", "k1"),
        ("e2b", "k2"),
    ]


@pytest.mark.parametrize("daytona", [1, 2, 3, 5])
@pytest.mark.parametrize("e2b", [1, 2, 4, 7])
def test_every_window_selects_each_key_exactly_once(daytona: int, e2b: int) -> None:
    manager = _manager(daytona, e2b)
    total = daytona + e2b

    for _ in range(3):
        window = [manager.get_next() for _ in range(total)]
        assert len({(entry.backend, entry.index) for entry in window}) == total


def test_rotation_is_deterministic() -> None:
    first = _manager(2, 5)
    second = _manager(2, 5)

    assert [first.get_next() for _ in range(14)] == [second.get_next() for _ in range(14)]


def test_minority_backend_is_spread_across_the_schedule() -> None:
    schedule = build_slot_schedule([(DAYTONA, 2), (E2B, 6)])

    positions = [index for index, backend in enumerate(schedule) if backend == DAYTONA]

    assert len(schedule) == 8
    assert len(positions) == 2
    assert positions[1] - positions[0] == 4


def test_weights_scale_selection_frequency() -> None:
    manager = KeyRotationManager(
        CredentialPool(keys={DAYTONA: ("d1",), E2B: ("e1", "e2")}, weights={DAYTONA: 2})
    )

    window = [manager.get_next().backend for _ in range(4)]

    assert window.count(DAYTONA) == 2
    assert window.count(E2B) == 2


def test_no_keys_raises_no_credentials() -> None:
    manager = KeyRotationManager(CredentialPool())

    with pytest.raises(NoCredentialsError, match="No API keys available"):
        manager.get_next()
    assert manager.total_key_count == 0


def test_get_key_returns_none_for_invalid_index() -> None:
    manager = _manager(1, 2)

    assert manager.get_key(E2B, 1).key == "e2b-key-1"
    assert manager.get_key(E2B, 2) is None
    assert manager.get_key(E2B, -1) is None
    assert manager.get_key(BackendType.LOCAL, 0) is None


def test_stats_report_masked_keys_and_cursor_positions() -> None:
    manager = _manager(1, 2)
    manager.get_next()
    manager.get_next()

    stats = {item.backend: item for item in manager.get_stats()}

    assert stats[E2B].total_keys == 2
    assert stats[DAYTONA].keys == ("dayt***",)
    assert all("***" in key for key in stats[E2B].keys)
    assert stats[DAYTONA].current_index + stats[E2B].current_index == 1


def test_reset_rewinds_the_schedule() -> None:
    manager = _manager(2, 3)
    first = [manager.get_next() for _ in range(3)]

    manager.reset()

    assert [manager.get_next() for _ in range(3)] == first


def test_reload_replaces_the_pool() -> None:
    manager = _manager(1, 0)

    manager.reload(CredentialPool(keys={E2B: ("fresh",)}))

    assert manager.get_next().key == "fresh"
    assert manager.available_backends() == [E2B]


def test_pool_from_settings_respects_single_provider_mode() -> None:
    settings = Settings(provider="e2b", daytona_api_keys="d1", e2b_api_keys="e1,e2")

    pool = CredentialPool.from_settings(settings)

    assert pool.backends() == [E2B]
    assert pool.total == 2


def test_key_entry_repr_masks_the_key() -> None:
    manager = KeyRotationManager(CredentialPool(keys={E2B: ("e2b_0123456789abcdef0123",)}))

    assert "0123456789abcdef0123" not in repr(manager.get_next())


def test_pool_from_settings_carries_configured_weights() -> None:
    settings = Settings(provider="multi", daytona_api_keys="d1", e2b_api_keys="e1,e2", daytona_key_weight=2)
    manager = KeyRotationManager(CredentialPool.from_settings(settings))

    window = [manager.get_next().backend for _ in range(4)]

    assert window.count(DAYTONA) == 2
    assert window.count(E2B) == 2
