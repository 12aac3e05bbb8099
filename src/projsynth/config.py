"""Configuration loading and API key lookup."""

from __future__ import annotations

import json
import os
from dataclasses import fields
from pathlib import Path

import keyring

from projsynth.models import PoolConfig, SynthesisConfig

SERVICE_NAME = "projsynth-gemini"
KEY_NAME = "api_key"
ENV_VAR = "GEMINI_API_KEY"

DEFAULT_CONFIG_PATH = Path("config/projsynth.json")


def find_api_key() -> str | None:
    """Return the Gemini API key from the keyring or ``GEMINI_API_KEY``, if any."""
    api_key = keyring.get_password(SERVICE_NAME, KEY_NAME)
    if api_key:
        return api_key
    return os.environ.get(ENV_VAR) or None


def get_api_key() -> str:
    """Get Gemini API key: system keyring first, then GEMINI_API_KEY env var fallback.

    Raises:
        RuntimeError: If no key found anywhere, with actionable instructions.
    """
    api_key = find_api_key()
    if api_key:
        return api_key

    raise RuntimeError(
        "Gemini API key not found.\n"
        "Set it with: projsynth config set-api-key YOUR_KEY\n"
        f"Or: export {ENV_VAR}=your-key"
    )


def set_api_key(api_key: str) -> None:
    keyring.set_password(SERVICE_NAME, KEY_NAME, api_key)


def _known(cls: type, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


def load_synthesis_config(config_path: Path | None = None) -> SynthesisConfig:
    """Load synthesis configuration from JSON, falling back to defaults.

    Reads from ``config/projsynth.json`` when *config_path* is ``None``.
    Unknown keys are ignored; pool settings live under a ``"pool"`` object.
    The API key is never read from the file.

    Args:
        config_path: Optional explicit path to a JSON config file.

    Returns:
        SynthesisConfig populated from file + keyring/env key.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)

    pool = PoolConfig(**_known(PoolConfig, data.get("pool") or {}))
    kwargs = _known(SynthesisConfig, data)
    kwargs.pop("api_key", None)
    kwargs["pool"] = pool

    config = SynthesisConfig(**kwargs)
    config.api_key = find_api_key()
    return config
