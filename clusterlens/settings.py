"""Application settings kept in memory and written to a JSON or YAML file."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Optional, Union

import yaml

_MISSING = object()


class ConfigWriteError(Exception):
    """Raised when the settings cannot be written to their file."""


class Settings:
    """Case-insensitive key/value settings with an optional backing file."""

    def __init__(
        self,
        values: Optional[Mapping[str, Any]] = None,
        config_file: Union[str, Path, None] = None,
    ) -> None:
        self._values: dict = {}
        for key, value in (values or {}).items():
            self.set(key, value)
        self.config_file: Optional[Path] = Path(config_file) if config_file else None

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under ``key``, or ``default``."""
        return self._values.get(key.lower(), default)

    def get_list(self, key: str) -> list:
        """Return the value under ``key`` as a list of strings."""
        value = self._values.get(key.lower())
        if value is None:
            return []
        if isinstance(value, str):
            return value.split()
        if isinstance(value, Iterable):
            return [str(item) for item in value]
        return [str(value)]

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``."""
        if isinstance(value, (tuple, set, frozenset)):
            value = list(value)
        self._values[key.lower()] = value

    def set_config_file(self, path: Union[str, Path]) -> None:
        """Choose the file that :meth:`write` saves to."""
        self.config_file = Path(path)

    def write(self) -> None:
        """Save all settings to the config file, in the format its suffix names."""
        if self.config_file is None:
            raise ConfigWriteError("no config file has been set")
        suffix = self.config_file.suffix.lower().lstrip(".")
        if suffix == "json":
            text = json.dumps(self._values, indent=2, sort_keys=True) + "\n"
        elif suffix in ("yaml", "yml"):
            text = yaml.safe_dump(self._values, sort_keys=True)
        else:
            raise ConfigWriteError(f"unsupported config type: {suffix or '<none>'}")
        try:
            self.config_file.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise ConfigWriteError(str(exc)) from exc


def filters_active(settings: Settings, names: Iterable[str]) -> bool:
    """Return whether any of ``names`` is among the active filters."""
    active = set(settings.get_list("active_filters"))
    return any(name in active for name in names)