"""Where conduit looks for its configuration.

``CONDUIT_HOME`` overrides the per-user directory (default ``~/.conduit``).
"""

import os
from pathlib import Path

HOME_ENV_VAR = "CONDUIT_HOME"
CONFIG_FILE_NAME = "config.toml"
SYSTEM_CONFIG_PATH = Path("/etc/conduit") / CONFIG_FILE_NAME


def get_conduit_home() -> Path:
    if env_home := os.environ.get(HOME_ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".conduit"


def get_config_path() -> Path:
    return get_conduit_home() / CONFIG_FILE_NAME


def config_search_paths() -> list[Path]:
    """Working directory first, then the user's home, then system-wide."""
    return [Path(CONFIG_FILE_NAME), get_config_path(), SYSTEM_CONFIG_PATH]


def find_config_file(explicit: Path | None = None) -> Path:
    """Resolve the config file to load.

    Raises:
        FileNotFoundError: The explicit path is missing, or no default
            location holds a config file.
    """
    if explicit is not None:
        path = Path(explicit).expanduser()
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")
        return path

    candidates = config_search_paths()
    for candidate in candidates:
        if candidate.expanduser().is_file():
            return candidate.expanduser()
    searched = ", ".join(str(p) for p in candidates)
    raise FileNotFoundError(f"No config file found. Searched: {searched}")
