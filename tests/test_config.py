"""Tests for defaults and environment overrides."""

import pytest

from git_flotilla.config import (
    DEFAULT_MAX_DEPTH,
    DEFAULT_PARALLEL,
    Settings,
    load_settings,
)
from git_flotilla.errors import ConfigurationError


def test_defaults_from_empty_environment():
    settings = load_settings({})
    assert settings == Settings()
    assert settings.parallel == DEFAULT_PARALLEL == 10
    assert settings.max_depth == DEFAULT_MAX_DEPTH == 1
    assert settings.include_submodules is False
    assert settings.git_binary == "git"


def test_environment_overrides():
    settings = load_settings(
        {
            "GIT_FLOTILLA_PARALLEL": "4",
            "GIT_FLOTILLA_MAX_DEPTH": "3",
            "GIT_FLOTILLA_INCLUDE_SUBMODULES": "yes",
            "GIT_FLOTILLA_STALE_DAYS": "90",
            "GIT_FLOTILLA_GIT": "/usr/local/bin/git",
        }
    )
    assert settings.parallel == 4
    assert settings.max_depth == 3
    assert settings.include_submodules is True
    assert settings.stale_days == 90
    assert settings.git_binary == "/usr/local/bin/git"


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("GIT_FLOTILLA_PARALLEL", "2")
    assert load_settings().parallel == 2


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("GIT_FLOTILLA_PARALLEL", "many"),
        ("GIT_FLOTILLA_PARALLEL", "0"),
        ("GIT_FLOTILLA_MAX_DEPTH", "-1"),
        ("GIT_FLOTILLA_INCLUDE_SUBMODULES", "maybe"),
    ],
)
def test_invalid_values(key, value):
    with pytest.raises(ConfigurationError, match=key):
        load_settings({key: value})
