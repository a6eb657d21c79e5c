"""Centralized config loading — read once at import time."""

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Load .env from project root (parent of awb/)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

_config = yaml.safe_load(CONFIG_PATH.read_text())

# Environment variables win over the YAML defaults
_ENV_OVERRIDES = {
    "AWB_API_BASE_URL": "api_base_url",
    "AWB_LOG_LEVEL": "log_level",
}

for _env_name, _key in _ENV_OVERRIDES.items():
    if os.getenv(_env_name):
        _config[_key] = os.environ[_env_name]


def get_config() -> dict:
    """Return the loaded config dictionary."""
    return _config
