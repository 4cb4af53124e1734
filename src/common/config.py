"""
Configuration module for the policy classifier.

This module centralizes the loading and validation of all process-level
configuration parameters from environment variables. It provides a single
`Settings` class that acts as a container for all configurable values,
ensuring that they are defined in one place and can be easily imported and
used throughout the application.

Model selection (which model, batch size, sequence length, ...) is *not*
configured here: it is a persisted, user-editable value handled by
:mod:`common.model_settings`.
"""

import os
from pathlib import Path
from typing import Literal

DEFAULT_DATA_DIR = Path.home() / ".cache" / "policy-classifier"


class Settings:
    """
    A container for all configuration settings, loaded from environment variables.

    This class centralizes configuration, providing default values for optional
    settings and raising errors for invalid values.
    """

    # --- Logging ---
    LOG_LEVEL: str
    LOG_FORMAT: Literal["console", "json"]

    # --- Storage ---
    ARTIFACT_STORE_PATH: Path
    SETTINGS_PATH: Path
    MODEL_MANIFEST: str

    # --- Network ---
    REQUEST_TIMEOUT: int
    DOWNLOAD_TIMEOUT: int
    USER_AGENT: str

    # --- Retry ---
    MAX_RETRIES: int
    RETRY_DELAY_SECONDS: float

    # --- Classification ---
    SKIP_OTHER_CLASS: bool

    def __init__(self):
        """
        Loads settings from environment variables and performs validation.
        """
        # --- Logging ---
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FORMAT = os.getenv("LOG_FORMAT", "console").lower()
        if self.LOG_FORMAT not in ("console", "json"):
            raise ValueError("LOG_FORMAT must be 'console' or 'json'")

        # --- Storage ---
        data_dir = Path(os.getenv("POLICY_CLASSIFIER_HOME", str(DEFAULT_DATA_DIR)))
        self.ARTIFACT_STORE_PATH = Path(
            os.getenv("ARTIFACT_STORE_PATH", str(data_dir / "models.sqlite3"))
        )
        self.SETTINGS_PATH = Path(
            os.getenv("SETTINGS_PATH", str(data_dir / "settings.json"))
        )
        self.MODEL_MANIFEST = os.getenv("MODEL_MANIFEST", "models.json")

        # --- Network ---
        self.REQUEST_TIMEOUT = self._get_int("REQUEST_TIMEOUT", 30, minimum=1)
        self.DOWNLOAD_TIMEOUT = self._get_int("DOWNLOAD_TIMEOUT", 300, minimum=1)
        self.USER_AGENT = os.getenv(
            "USER_AGENT", "Mozilla/5.0 (compatible; policy-classifier/0.1)"
        )

        # --- Retry ---
        self.MAX_RETRIES = self._get_int("MAX_RETRIES", 3, minimum=1)
        self.RETRY_DELAY_SECONDS = float(os.getenv("RETRY_DELAY_SECONDS", 1.5))
        if self.RETRY_DELAY_SECONDS < 0:
            raise ValueError("RETRY_DELAY_SECONDS must be >= 0")

        # --- Classification ---
        self.SKIP_OTHER_CLASS = self._get_bool("SKIP_OTHER_CLASS", True)

    def _get_int(self, var_name: str, default: int, minimum: int) -> int:
        """
        Gets an integer environment variable, enforcing a lower bound.
        """
        raw = os.getenv(var_name)
        if raw is None:
            return default
        try:
            value = int(raw)
        except ValueError:
            raise ValueError(f"{var_name} must be an integer, got {raw!r}") from None
        if value < minimum:
            raise ValueError(f"{var_name} must be >= {minimum}")
        return value

    def _get_bool(self, var_name: str, default: bool) -> bool:
        """
        Gets a boolean environment variable ("true"/"false", "1"/"0", "yes"/"no").
        """
        raw = os.getenv(var_name)
        if raw is None:
            return default
        value = raw.strip().lower()
        if value in ("1", "true", "yes", "on"):
            return True
        if value in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"{var_name} must be a boolean, got {raw!r}")
