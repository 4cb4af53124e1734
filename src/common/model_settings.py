"""
Model Settings
==============

The user-editable model configuration (which model to run, how to batch it)
and its persistence.

`ModelSettings` is an immutable snapshot: updates always produce a new value
and consumers holding an older snapshot are never affected. `SettingsStore`
keeps the current snapshot in a small JSON file, falling back to the defaults
when nothing has been saved yet.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

log = structlog.get_logger(__name__)

WEIGHTS_FILE_NAME = "model"


@dataclass(frozen=True)
class ModelSettings:
    model_name: str = "TinyBERT"
    model_size: str = "base"
    batch_size: int = 1
    max_seq_len: int = 256
    use_hw_acceleration: bool = True
    num_threads: int = 1

    def __post_init__(self):
        if not self.model_name or not self.model_size:
            raise ValueError("model_name and model_size must be non-empty")
        for name in ("batch_size", "max_seq_len", "num_threads"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
            if value < 1:
                raise ValueError(f"{name} must be >= 1")
        if not isinstance(self.use_hw_acceleration, bool):
            raise ValueError("use_hw_acceleration must be a boolean")

    @property
    def identity(self) -> str:
        """``<model_name>/<model_size>``, used in messages and errors."""
        return f"{self.model_name}/{self.model_size}"

    @property
    def namespace(self) -> str:
        """Artifact key prefix for this model, including the trailing slash."""
        return f"{self.identity}/"

    def artifact_key(self, file_name: str) -> str:
        return f"{self.namespace}{file_name}"

    @property
    def weights_key(self) -> str:
        return self.artifact_key(WEIGHTS_FILE_NAME)

    def session_key(self) -> tuple:
        """Fields that require rebuilding the inference session when changed."""
        return (
            self.model_name,
            self.model_size,
            self.use_hw_acceleration,
            self.num_threads,
        )

    def replace(self, **changes: Any) -> "ModelSettings":
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModelSettings":
        """Build settings from a mapping, ignoring unknown keys."""
        known = {field.name for field in dataclasses.fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


DEFAULT_MODEL_SETTINGS = ModelSettings()


def parse_setting_value(name: str, raw: str) -> Any:
    """Convert a ``KEY=VALUE`` string from the command line to the field's type."""
    fields = {field.name: field for field in dataclasses.fields(ModelSettings)}
    if name not in fields:
        raise ValueError(f"Unknown setting: {name}")
    default = getattr(DEFAULT_MODEL_SETTINGS, name)
    if isinstance(default, bool):
        value = raw.strip().lower()
        if value in ("1", "true", "yes", "on"):
            return True
        if value in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"{name} must be a boolean, got {raw!r}")
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    return raw


class SettingsStore:
    """Persists `ModelSettings` as JSON at ``path``."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def get(self) -> ModelSettings:
        """Return the saved settings, or the defaults if none are usable."""
        if not self.path.exists():
            log.debug("No custom settings found; using defaults", path=str(self.path))
            return DEFAULT_MODEL_SETTINGS
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("settings file does not contain a JSON object")
            settings = ModelSettings.from_dict({**DEFAULT_MODEL_SETTINGS.to_dict(), **data})
        except (OSError, ValueError) as e:
            log.warning(
                "Error reading settings; using defaults",
                path=str(self.path),
                error=str(e),
            )
            return DEFAULT_MODEL_SETTINGS
        return settings

    def set(self, changes: dict[str, Any]) -> ModelSettings:
        """Merge ``changes`` into the current settings and save the result."""
        if not isinstance(changes, dict) or not changes:
            raise ValueError("Invalid settings object provided.")
        unknown = set(changes) - {field.name for field in dataclasses.fields(ModelSettings)}
        if unknown:
            raise ValueError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        updated = self.get().replace(**changes)
        self._write(updated)
        log.info("Settings saved", **updated.to_dict())
        return updated

    def reset(self) -> ModelSettings:
        """Restore factory defaults."""
        self._write(DEFAULT_MODEL_SETTINGS)
        log.info("Settings reset to default")
        return DEFAULT_MODEL_SETTINGS

    def _write(self, settings: ModelSettings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(settings.to_dict(), indent=2), encoding="utf-8")
