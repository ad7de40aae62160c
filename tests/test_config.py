from __future__ import annotations

from pathlib import Path

import pytest

from swe_sandbox.config import load_settings
from swe_sandbox.errors import ConfigurationError


def _missing(tmp_path: Path) -> str:
    return str(tmp_path / "missing.yaml")


def test_defaults_without_any_configuration(tmp_path: Path) -> None:
    settings = load_settings(env={}, config_path=_missing(tmp_path))

    assert settings.provider == "daytona"
    assert settings.daytona_snapshot == "open-swe-vcpu2-mem4-disk5"
    assert settings.e2b_template == "base"
    assert settings.lifetime_seconds == 3600
    assert settings.command_timeout_seconds == 60
    assert settings.skills_repository_url is None
    assert settings.placeholder_signature is None


def test_provider_is_detected_from_configured_keys(tmp_path: Path) -> None:
    both = load_settings(
        env={"DAYTONA_API_KEY": "d1", "E2B_API_KEY": "e1,e2"},
        config_path=_missing(tmp_path),
    )
    e2b_only = load_settings(env={"E2B_API_KEY": "e1"}, config_path=_missing(tmp_path))

    assert both.provider == "multi"
    assert e2b_only.provider == "e2b"


def test_single_mode_resolves_to_the_backend_with_keys(tmp_path: Path) -> None:
    settings = load_settings(
        env={"SANDBOX_PROVIDER": "single", "E2B_API_KEY": "e1"},
        config_path=_missing(tmp_path),
    )

    assert settings.provider == "e2b"


def test_yaml_supplies_defaults_and_environment_wins(tmp_path: Path) -> None:
    config = tmp_path / "sandbox.yaml"
    config.write_text(
        "sandbox:\n"
        "  provider: local\n"
        "  command_timeout_seconds: 90\n"
        "  e2b_api_key: [a, b]\n"
        "  skills_repository_url: https://github.com/acme/skills.git\n",
        encoding="utf-8",
    )

    settings = load_settings(
        env={"COMMAND_TIMEOUT_SECONDS": "30", "GITHUB_PAT": "ghp_x"},
        config_path=str(config),
    )

    assert settings.provider == "local"
    assert settings.is_local
    assert settings.command_timeout_seconds == 30
    assert settings.e2b_api_keys == "a,b"
    assert settings.skills_repository_url == "https://github.com/acme/skills.git"
    assert settings.github_token == "ghp_x"


def test_invalid_integer_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="command_timeout_seconds"):
        load_settings(env={"COMMAND_TIMEOUT_SECONDS": "soon"}, config_path=_missing(tmp_path))


def test_non_positive_integer_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_settings(env={"SANDBOX_LIFETIME_SECONDS": "0"}, config_path=_missing(tmp_path))


def test_unknown_provider_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="SANDBOX_PROVIDER"):
        load_settings(env={"SANDBOX_PROVIDER": "docker"}, config_path=_missing(tmp_path))


def test_config_file_must_be_a_mapping(tmp_path: Path) -> None:
    config = tmp_path / "sandbox.yaml"
    config.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_settings(env={}, config_path=str(config))


def test_key_weights_are_read_from_the_environment(tmp_path: Path) -> None:
    settings = load_settings(
        env={"DAYTONA_API_KEY": "d1", "E2B_API_KEY": "e1", "E2B_KEY_WEIGHT": "3"},
        config_path=_missing(tmp_path),
    )

    assert settings.daytona_key_weight == 1
    assert settings.e2b_key_weight == 3
