"""Tests for configuration loading and API key lookup."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from projsynth.config import SERVICE_NAME, find_api_key, get_api_key, load_synthesis_config
from projsynth.models import PoolConfig


@pytest.fixture(autouse=True)
def no_keyring():
    with patch("projsynth.config.keyring.get_password", return_value=None) as get_password:
        yield get_password


class TestApiKey:
    """Keyring first, then GEMINI_API_KEY."""

    def test_keyring_wins(self, no_keyring, monkeypatch):
        no_keyring.return_value = "from-keyring"
        monkeypatch.setenv("GEMINI_API_KEY", "from-env")
        assert get_api_key() == "from-keyring"
        no_keyring.assert_called_with(SERVICE_NAME, "api_key")

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "from-env")
        assert get_api_key() == "from-env"

    def test_missing_key_raises_with_instructions(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        assert find_api_key() is None
        with pytest.raises(RuntimeError, match="set-api-key"):
            get_api_key()


class TestLoadConfig:
    """JSON overrides merged over dataclass defaults."""

    def test_defaults_when_file_missing(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        config = load_synthesis_config(tmp_path / "absent.json")
        assert config.model == "gemini-2.5-flash"
        assert config.pool == PoolConfig()
        assert config.api_key is None

    def test_overrides_and_unknown_keys(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        path = tmp_path / "projsynth.json"
        path.write_text(json.dumps({
            "model": "gemini-2.5-pro",
            "min_review_confidence": 0.7,
            "api_key": "never-from-file",
            "colour": "blue",
            "pool": {"max_concurrent": 2, "timeout": 5.0, "bogus": True},
        }))

        config = load_synthesis_config(path)

        assert config.model == "gemini-2.5-pro"
        assert config.min_review_confidence == 0.7
        assert config.api_key == "env-key"
        assert config.pool.max_concurrent == 2
        assert config.pool.timeout == 5.0
        assert config.pool.failure_threshold == 3
