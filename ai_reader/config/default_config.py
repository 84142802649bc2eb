"""Default configuration for the application.

Builds the initial settings dictionary from the environment (GEMINI_API_KEYS,
GEMINI_API_KEY), the key pool file and an optional JSON settings file.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional

from ai_reader.config.base.settings import KEY_FILE_SETTINGS

logger = logging.getLogger("AIReaderGateway")


def _load_keys_from_file(file_path: str) -> List[str]:
    if not file_path or not os.path.exists(file_path):
        return []
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return [
                line.strip()
                for line in f
                if line.strip() and not line.startswith("#")
            ]
    except OSError as e:
        logger.error(f"Error reading key file {file_path}: {e}")
        return []


def _load_settings_file(file_path: Optional[str]) -> Dict[str, Any]:
    if not file_path or not os.path.exists(file_path):
        return {}
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Error reading settings file {file_path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Settings file {file_path} does not contain an object. Ignored.")
        return {}
    return data


def build_default_config(
    keys_file: Optional[str] = None,
    settings_file: Optional[str] = None,
) -> Dict[str, Any]:
    """Assembles the startup settings.

    Precedence (lowest first): environment keys, key pool file, settings file.
    Keys from the environment and the key file are concatenated in that order.
    """
    config: Dict[str, Any] = {}

    env_keys = os.getenv("GEMINI_API_KEYS", "")
    api_keys = [k for k in env_keys.replace(",", "\n").splitlines() if k.strip()]
    api_keys.extend(_load_keys_from_file(keys_file or KEY_FILE_SETTINGS["path"]))
    if api_keys:
        config["api_keys"] = api_keys

    legacy_key = os.getenv("GEMINI_API_KEY", "")
    if legacy_key:
        config["text_api_key"] = legacy_key

    for env_name, field in (
        ("AI_READER_TEXT_MODEL", "text_model"),
        ("AI_READER_IMAGE_MODEL", "image_model"),
        ("AI_READER_REQUEST_TIMEOUT_SECS", "request_timeout_secs"),
    ):
        value = os.getenv(env_name)
        if value:
            config[field] = value

    if os.getenv("AI_READER_USE_FALLBACK") is not None:
        config["use_fallback"] = os.getenv("AI_READER_USE_FALLBACK", "true").lower() == "true"
    if os.getenv("AI_READER_DEBUG") is not None:
        config["debug_mode"] = os.getenv("AI_READER_DEBUG", "false").lower() == "true"

    config.update(_load_settings_file(settings_file))
    return config
