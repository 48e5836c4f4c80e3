"""Configuration and credentials for the Gemini API.

Gemini uses a single API key sent with every request. The key lives in
config.yaml (``api.api_key``) or the ``GEMINI_API_KEY`` environment variable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from photoshoot.errors import CredentialsError

_CONFIG_PATH = Path("config.yaml")
_PLACEHOLDER_KEY = "YOUR_GEMINI_API_KEY"
_ENV_KEY = "GEMINI_API_KEY"

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

_DEFAULT_CONFIG: dict = {
    "api": {
        "api_key": "",
        "base_url": DEFAULT_BASE_URL,
        "text_model": "gemini-2.5-flash",
        "image_model": "gemini-2.5-flash-image-preview",
        "video_model": "veo-2.0-generate-001",
    },
    "generation": {
        "count": 3,
        "delay": 1,
        "style": "e-commerce",
        "aspect_ratio": "9:16",
    },
    "polling": {
        "interval_seconds": 10,
    },
    "output": {
        "base_dir": "output",
        "history_file": "history.json",
        "exports_dir": "exports",
    },
}


@dataclass(frozen=True)
class Credentials:
    """Explicit credential handle passed into the gateway client."""
    api_key: str

    @property
    def is_set(self) -> bool:
        return bool(self.api_key) and self.api_key != _PLACEHOLDER_KEY


def load_config(config_path: str | Path | None = None) -> dict:
    """Load and return the full configuration dictionary.

    Missing sections and keys are filled in from the built-in defaults.

    Args:
        config_path: Override path to config file.

    Returns:
        The parsed config dictionary.

    Raises:
        FileNotFoundError: If an explicit config file does not exist.
    """
    path = Path(config_path) if config_path else _CONFIG_PATH
    if not path.exists():
        if config_path:
            raise FileNotFoundError(f"Config file not found: {path}")
        return _merge({}, _DEFAULT_CONFIG)

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config file must be a YAML mapping, got {type(raw).__name__}")
    return _merge(raw, _DEFAULT_CONFIG)


def get_credentials(config: dict) -> Credentials:
    """Return the credential handle, preferring config over the environment.

    A missing key is not an error here; the gateway raises CredentialsError
    when a request is actually attempted without one.
    """
    api_key = config.get("api", {}).get("api_key") or ""
    if not api_key or api_key == _PLACEHOLDER_KEY:
        api_key = os.getenv(_ENV_KEY, "")
    return Credentials(api_key=api_key)


def get_api_key(config_path: str | Path | None = None) -> str:
    """Return the API key from config.yaml or the environment.

    Raises:
        CredentialsError: If the key is missing or still set to the placeholder.
    """
    credentials = get_credentials(load_config(config_path))
    if not credentials.is_set:
        raise CredentialsError(
            "API key not found. Set 'api.api_key' in config.yaml, export "
            f"{_ENV_KEY}, or run 'photoshoot set-key'."
        )
    return credentials.api_key


def save_api_key(api_key: str, config_path: str | Path | None = None) -> Path:
    """Store the API key in config.yaml, creating the file if needed.

    Returns:
        The path that was written.
    """
    api_key = api_key.strip()
    if not api_key:
        raise ValueError("API key must not be empty")

    path = Path(config_path) if config_path else _CONFIG_PATH
    raw: dict = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    raw.setdefault("api", {})["api_key"] = api_key

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(raw, f, sort_keys=False, allow_unicode=True)
    return path


def resolve_output_paths(config: dict) -> dict:
    """Resolve output locations.

    Returns dict with keys: base_dir, history_file, exports_dir.
    """
    output = config["output"]
    base_dir = Path(output.get("base_dir", "output"))
    return {
        "base_dir": base_dir,
        "history_file": base_dir / output.get("history_file", "history.json"),
        "exports_dir": base_dir / output.get("exports_dir", "exports"),
    }


def _merge(raw: dict, defaults: dict) -> dict:
    merged = {}
    for key, default in defaults.items():
        value = raw.get(key)
        if isinstance(default, dict):
            merged[key] = _merge(value if isinstance(value, dict) else {}, default)
        else:
            merged[key] = default if value is None else value
    for key, value in raw.items():
        merged.setdefault(key, value)
    return merged
