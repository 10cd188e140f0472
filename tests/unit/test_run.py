import argparse
import logging
import os

import pytest

import run
from crypto_agent.config import settings


@pytest.fixture
def restore_root_level():
    root = logging.getLogger()
    level = root.level
    yield root
    root.setLevel(level)


def test_cli_overrides_reach_settings_and_logging(monkeypatch, restore_root_level):
    monkeypatch.setattr(settings, "ENV", settings.ENV)
    monkeypatch.setattr(settings, "LOG_LEVEL", settings.LOG_LEVEL)
    monkeypatch.setenv("ENV", os.environ.get("ENV", "test"))
    monkeypatch.setenv("LOG_LEVEL", os.environ.get("LOG_LEVEL", "ERROR"))

    run.apply_cli_overrides(argparse.Namespace(env="production", log_level="DEBUG"))

    assert settings.ENV == "production"
    assert settings.LOG_LEVEL == "DEBUG"
    assert os.environ["ENV"] == "production"
    assert os.environ["LOG_LEVEL"] == "DEBUG"
    assert restore_root_level.level == logging.DEBUG
