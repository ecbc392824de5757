"""Connection settings for syno-vm.

Settings live in a small YAML file (``~/.syno-vm/config.yaml`` by default) and
can be overridden with ``SYNO_VM_*`` environment variables or a ``.env`` file.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from syno_vm.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.syno-vm/config.yaml")
DEFAULT_PORT = 22
DEFAULT_TIMEOUT = 30
ENV_PREFIX = "SYNO_VM_"

CONFIG_KEYS = ["host", "username", "password", "port", "keyfile", "timeout"]
INT_KEYS = {"port", "timeout"}
HIDDEN_KEYS = {"password"}


def expand_user_path(path: str) -> str:
    """Expand a leading ``~`` to the home directory; other paths are unchanged."""
    if path == "~" or path.startswith("~/"):
        return os.path.expanduser(path)
    return path


@dataclass
class Settings:
    """Resolved connection settings passed to the SSH and web API clients."""

    host: str = ""
    username: str = ""
    password: str = ""
    port: int = DEFAULT_PORT
    keyfile: str = ""
    timeout: int = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if self.keyfile:
            self.keyfile = expand_user_path(self.keyfile)


class ConfigStore:
    """Reads and writes the YAML configuration file."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(os.path.expanduser(str(path or DEFAULT_CONFIG_PATH)))

    def load(self) -> Dict[str, Any]:
        """Return the stored key/value mapping (empty if the file is missing)."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid config file {self.path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {self.path} must contain a mapping")
        return data

    def save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False)
        logger.debug("Wrote configuration to %s", self.path)

    def set_values(self, **values: Any) -> Dict[str, Any]:
        """Merge the given non-None values into the file and return them."""
        updates = {key: value for key, value in values.items() if value is not None}
        unknown = set(updates) - set(CONFIG_KEYS)
        if unknown:
            raise ConfigurationError(f"Unknown configuration key(s): {', '.join(sorted(unknown))}")
        if "keyfile" in updates:
            updates["keyfile"] = expand_user_path(updates["keyfile"])

        data = self.load()
        data.update(updates)
        self.save(data)
        return updates

    def get(self, key: str) -> Any:
        return self.load().get(key)

    def items(self) -> List[Tuple[str, Any]]:
        """Return set keys in display order."""
        data = self.load()
        return [(key, data[key]) for key in CONFIG_KEYS if data.get(key) is not None]


def _to_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")


def load_settings(store: Optional[ConfigStore] = None) -> Settings:
    """Resolve settings from the config file and ``SYNO_VM_*`` environment variables."""
    load_dotenv()
    store = store or ConfigStore()
    values = store.load()

    for key in CONFIG_KEYS:
        env_value = os.getenv(f"{ENV_PREFIX}{key.upper()}")
        if env_value is not None:
            values[key] = env_value

    return Settings(
        host=str(values.get("host") or ""),
        username=str(values.get("username") or ""),
        password=str(values.get("password") or ""),
        port=_to_int("port", values.get("port", DEFAULT_PORT)),
        keyfile=str(values.get("keyfile") or ""),
        timeout=_to_int("timeout", values.get("timeout", DEFAULT_TIMEOUT)),
    )
