"""Runtime configuration for the sandbox orchestration layer."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Any, Mapping

from dotenv import load_dotenv
import yaml

from swe_sandbox.errors import ConfigurationError

PROVIDER_MODES = ("daytona", "e2b", "multi", "local")
DEFAULT_CONFIG_PATH = "config/sandbox.yaml"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Environment variable -> (settings field, YAML key)
_ENV_FIELDS = {
    "SANDBOX_PROVIDER": ("provider", "provider"),
    "DAYTONA_API_KEY": ("daytona_api_keys", "daytona_api_key"),
    "DAYTONA_API_URL": ("daytona_api_url", "daytona_api_url"),
    "DAYTONA_SNAPSHOT_NAME": ("daytona_snapshot", "daytona_snapshot_name"),
    "DAYTONA_USER": ("daytona_user", "daytona_user"),
    "E2B_API_KEY": ("e2b_api_keys", "e2b_api_key"),
    "E2B_TEMPLATE": ("e2b_template", "e2b_template"),
    "E2B_USER": ("e2b_user", "e2b_user"),
    "DAYTONA_KEY_WEIGHT": ("daytona_key_weight", "daytona_key_weight"),
    "E2B_KEY_WEIGHT": ("e2b_key_weight", "e2b_key_weight"),
    "SANDBOX_LIFETIME_SECONDS": ("lifetime_seconds", "lifetime_seconds"),
    "SANDBOX_AUTO_DELETE_MINUTES": ("auto_delete_minutes", "auto_delete_minutes"),
    "COMMAND_TIMEOUT_SECONDS": ("command_timeout_seconds", "command_timeout_seconds"),
    "LOCAL_WORKING_DIRECTORY": ("local_working_directory", "local_working_directory"),
    "SKILLS_REPOSITORY_URL": ("skills_repository_url", "skills_repository_url"),
    "SANDBOX_LOG_LEVEL": ("log_level", "log_level"),
    "SANDBOX_PLACEHOLDER_SIGNATURE": ("placeholder_signature", "placeholder_signature"),
}

_INT_FIELDS = {
    "lifetime_seconds",
    "auto_delete_minutes",
    "command_timeout_seconds",
    "daytona_key_weight",
    "e2b_key_weight",
}


@dataclass(frozen=True)
class Settings:
    provider: str = "daytona"
    daytona_api_keys: str = ""
    daytona_api_url: str | None = None
    daytona_snapshot: str = "open-swe-vcpu2-mem4-disk5"
    daytona_user: str = "daytona"
    e2b_api_keys: str = ""
    e2b_template: str = "base"
    e2b_user: str = "user"
    daytona_key_weight: int = 1
    e2b_key_weight: int = 1
    lifetime_seconds: int = 3600
    auto_delete_minutes: int = 15
    command_timeout_seconds: int = 60
    local_working_directory: str = ""
    skills_repository_url: str | None = None
    github_token: str | None = None
    log_level: str = "INFO"
    placeholder_signature: str | None = None

    @property
    def is_local(self) -> bool:
        return self.provider == "local"

    @property
    def working_directory(self) -> str:
        return self.local_working_directory or os.getcwd()


def load_settings(
    env: Mapping[str, str] | None = None,
    config_path: str | None = None,
) -> Settings:
    """Build Settings from .env, an optional YAML file and the environment.

    Passing ``env`` explicitly skips ``.env`` loading and reads only that mapping.
    """
    if env is None:
        load_dotenv(override=False)
        env = os.environ
    path = config_path or env.get("SANDBOX_CONFIG_PATH") or DEFAULT_CONFIG_PATH
    values: dict[str, Any] = {}
    file_values = _load_yaml(Path(path))

    for env_name, (field_name, yaml_key) in _ENV_FIELDS.items():
        raw = env.get(env_name)
        if raw is None or raw == "":
            raw = file_values.get(yaml_key)
        if raw is None or raw == "":
            continue
        if isinstance(raw, list):
            raw = ",".join(str(item) for item in raw)
        values[field_name] = _coerce(field_name, raw)

    token = env.get("GITHUB_TOKEN") or env.get("GITHUB_PAT") or file_values.get("github_token")
    if token:
        values["github_token"] = str(token)

    if "provider" in values:
        provider = str(values["provider"]).strip().lower()
        if provider == "single":
            provider = _detect_provider(values)
        if provider not in PROVIDER_MODES:
            raise ConfigurationError(
                f"Unknown SANDBOX_PROVIDER {values['provider']!r}; "
                f"expected one of {', '.join(PROVIDER_MODES)}"
            )
        values["provider"] = provider
    else:
        values["provider"] = _detect_provider(values)
    return Settings(**values)


def configure_logging(level: str | int = "INFO") -> None:
    root = logging.getLogger("swe_sandbox")
    if not any(getattr(handler, "_swe_sandbox", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._swe_sandbox = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    section = data.get("sandbox", {})
    if not isinstance(section, dict):
        raise ConfigurationError(f"'sandbox' section in {path} must be a mapping")
    return section


def _coerce(field_name: str, raw: Any) -> Any:
    if field_name not in _INT_FIELDS:
        return str(raw).strip()
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{field_name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{field_name} must be positive, got {value}")
    return value


def _detect_provider(values: Mapping[str, Any]) -> str:
    has_daytona = bool(str(values.get("daytona_api_keys", "")).strip(" ,"))
    has_e2b = bool(str(values.get("e2b_api_keys", "")).strip(" ,"))
    if has_daytona and has_e2b:
        return "multi"
    if has_e2b:
        return "e2b"
    return "daytona"
