"""Load configuration from TOML, then overlay the environment.

Environment overlays, applied in order:

- ``ANTHROPIC_API_KEY`` / ``OPENAI_API_KEY`` / ``TELEGRAM_BOT_TOKEN`` fill
  secrets the file leaves unset. A bot token alone is enough to enable the
  ``[telegram]`` section.
- ``CONDUIT_SERVERS`` holds a JSON list of extra server specs, appended
  after the file's ``[[servers]]``. Entries may use ``autoConnect``.
"""

import json
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import SecretStr

from conduit.config.models import ConduitConfig
from conduit.config.paths import find_config_file
from conduit.errors import ConfigError

SERVERS_ENV_VAR = "CONDUIT_SERVERS"

SECRET_ENV_VARS = {
    ("anthropic", "api_key"): "ANTHROPIC_API_KEY",
    ("openai", "api_key"): "OPENAI_API_KEY",
    ("telegram", "bot_token"): "TELEGRAM_BOT_TOKEN",
}


def apply_env_secrets(raw: dict[str, Any]) -> dict[str, Any]:
    for (section_name, key), env_var in SECRET_ENV_VARS.items():
        value = os.environ.get(env_var)
        if not value:
            continue
        section = raw.get(section_name)
        if section is None and section_name == "telegram":
            section = raw["telegram"] = {}
        if isinstance(section, dict) and section.get(key) is None:
            section[key] = SecretStr(value)
    return raw


def _normalize_server_entry(entry: Any) -> dict[str, Any]:
    if not isinstance(entry, dict):
        raise ConfigError(f"{SERVERS_ENV_VAR} entries must be JSON objects")
    entry = dict(entry)
    if "autoConnect" in entry:
        entry["auto_connect"] = entry.pop("autoConnect")
    return entry


def apply_env_servers(raw: dict[str, Any]) -> dict[str, Any]:
    value = os.environ.get(SERVERS_ENV_VAR)
    if not value:
        return raw
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{SERVERS_ENV_VAR} is not valid JSON: {e}") from None
    if not isinstance(parsed, list):
        raise ConfigError(f"{SERVERS_ENV_VAR} must be a JSON list of server specs")
    raw["servers"] = [
        *raw.get("servers", []),
        *(_normalize_server_entry(entry) for entry in parsed),
    ]
    return raw


def load_config(path: Path | None = None) -> ConduitConfig:
    """Load and validate configuration.

    Raises:
        FileNotFoundError: No config file could be located.
        ConfigError: The environment overlays are malformed.
        pydantic.ValidationError: The merged settings are invalid.
    """
    config_path = find_config_file(path)
    with config_path.open("rb") as f:
        raw = tomllib.load(f)
    return ConduitConfig.model_validate(apply_env_servers(apply_env_secrets(raw)))
