from __future__ import annotations

import pytest
from pydantic import ValidationError

from autotune.config import Settings


def test_defaults_match_batch_windows():
    cfg = Settings(_env_file=None)
    assert cfg.START_BATCH_DELAY == pytest.approx(0.1)
    assert cfg.COMPLETE_BATCH_DELAY == pytest.approx(0.01)
    assert cfg.PICKS_WRITE_DELAY == pytest.approx(0.1)
    assert cfg.STORAGE_NAMESPACE == "autotune.v1"


def test_base_urls_get_trailing_slash():
    cfg = Settings(API_BASE_URL="https://api.example.test/prod", _env_file=None)
    assert cfg.API_BASE_URL == "https://api.example.test/prod/"


def test_negative_delay_rejected():
    with pytest.raises(ValidationError):
        Settings(START_BATCH_DELAY=-0.5, _env_file=None)


def test_app_key_from_environment(monkeypatch):
    monkeypatch.setenv("APP_KEY", "from-env")
    monkeypatch.delenv("AUTOTUNE_APP_KEY", raising=False)
    assert Settings(_env_file=None).AUTOTUNE_APP_KEY == "from-env"
    monkeypatch.setenv("AUTOTUNE_OUTCOMES_FILE", "")
    assert Settings(_env_file=None).AUTOTUNE_OUTCOMES_FILE is None
