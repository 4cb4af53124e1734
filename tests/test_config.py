import os
from pathlib import Path

import pytest

from common.config import Settings


def test_settings_default_values(mocker):
    """
    Test that the Settings class loads default values correctly when no
    environment variables are set.
    """
    mocker.patch.dict(os.environ, {"POLICY_CLASSIFIER_HOME": "/data"}, clear=True)

    settings = Settings()

    assert settings.LOG_LEVEL == "INFO"
    assert settings.LOG_FORMAT == "console"
    assert settings.ARTIFACT_STORE_PATH == Path("/data/models.sqlite3")
    assert settings.SETTINGS_PATH == Path("/data/settings.json")
    assert settings.MODEL_MANIFEST == "models.json"
    assert settings.REQUEST_TIMEOUT == 30
    assert settings.DOWNLOAD_TIMEOUT == 300
    assert settings.MAX_RETRIES == 3
    assert settings.RETRY_DELAY_SECONDS == 1.5
    assert settings.SKIP_OTHER_CLASS is True


def test_settings_from_environment_variables(mocker):
    """
    Test that the Settings class correctly loads values from environment variables.
    """
    mocker.patch.dict(
        os.environ,
        {
            "LOG_LEVEL": "debug",
            "LOG_FORMAT": "JSON",
            "ARTIFACT_STORE_PATH": "/tmp/store.db",
            "SETTINGS_PATH": "/tmp/settings.json",
            "MODEL_MANIFEST": "https://models.example.com/models.json",
            "REQUEST_TIMEOUT": "5",
            "DOWNLOAD_TIMEOUT": "60",
            "MAX_RETRIES": "5",
            "RETRY_DELAY_SECONDS": "0.25",
            "SKIP_OTHER_CLASS": "false",
            "USER_AGENT": "test-agent",
        },
        clear=True,
    )

    settings = Settings()

    assert settings.LOG_LEVEL == "DEBUG"
    assert settings.LOG_FORMAT == "json"
    assert settings.ARTIFACT_STORE_PATH == Path("/tmp/store.db")
    assert settings.SETTINGS_PATH == Path("/tmp/settings.json")
    assert settings.MODEL_MANIFEST == "https://models.example.com/models.json"
    assert settings.REQUEST_TIMEOUT == 5
    assert settings.DOWNLOAD_TIMEOUT == 60
    assert settings.MAX_RETRIES == 5
    assert settings.RETRY_DELAY_SECONDS == 0.25
    assert settings.SKIP_OTHER_CLASS is False
    assert settings.USER_AGENT == "test-agent"


def test_invalid_log_format(mocker):
    mocker.patch.dict(os.environ, {"LOG_FORMAT": "xml"}, clear=True)

    with pytest.raises(ValueError, match="LOG_FORMAT must be 'console' or 'json'"):
        Settings()


@pytest.mark.parametrize(
    "var, value, message",
    [
        ("MAX_RETRIES", "0", "MAX_RETRIES must be >= 1"),
        ("MAX_RETRIES", "three", "MAX_RETRIES must be an integer"),
        ("REQUEST_TIMEOUT", "0", "REQUEST_TIMEOUT must be >= 1"),
        ("RETRY_DELAY_SECONDS", "-1", "RETRY_DELAY_SECONDS must be >= 0"),
        ("SKIP_OTHER_CLASS", "maybe", "SKIP_OTHER_CLASS must be a boolean"),
    ],
)
def test_invalid_values_raise(mocker, var, value, message):
    mocker.patch.dict(os.environ, {var: value}, clear=True)

    with pytest.raises(ValueError, match=message):
        Settings()
