# config/config_manager.py
import copy
import json
import logging
import os
from typing import Any, Dict, Optional

from ai_reader.common.logging_config import ApiKeyFilter
from ai_reader.common.models import ReaderSettings
from ai_reader.providers.credential_store import normalize_credentials
from .default_config import build_default_config

logger = logging.getLogger("AIReaderGateway")


def deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merges two dictionaries.
    Overrides merge into base.
    """
    result = copy.deepcopy(base)
    for key, value in overrides.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


class ConfigManager:
    """
    Owns the active ReaderSettings. The router reads settings through
    get_settings() on every request, so updates take effect on the next call.
    """

    def __init__(
        self,
        initial: Optional[Dict[str, Any]] = None,
        settings_file: Optional[str] = None,
    ):
        self._settings_file = settings_file
        if initial is None:
            initial = build_default_config(settings_file=settings_file)
        self._settings = ReaderSettings(**initial)
        ApiKeyFilter.add_sensitive_keys(normalize_credentials(self._settings))
        logger.info(
            f"ConfigManager initialized ({len(self._settings.api_keys)} keys, "
            f"text model '{self._settings.text_model}', fallback={self._settings.use_fallback})."
        )

    def get_settings(self) -> ReaderSettings:
        return self._settings

    def update_settings(self, overrides: Dict[str, Any]) -> ReaderSettings:
        """
        Applies a partial update. Fields set to None are ignored.
        Raises pydantic.ValidationError if the merged settings are invalid.
        """
        patch = {k: v for k, v in overrides.items() if v is not None}
        merged = deep_merge(self._settings.model_dump(), patch)
        previous_keys = normalize_credentials(self._settings)
        self._settings = ReaderSettings(**merged)
        ApiKeyFilter.replace_sensitive_keys(previous_keys, normalize_credentials(self._settings))
        logger.info(f"Settings updated: {sorted(patch.keys())}")
        if self._settings_file:
            self._save()
        return self._settings

    def _save(self):
        directory = os.path.dirname(self._settings_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self._settings_file, "w", encoding="utf-8") as f:
            json.dump(self._settings.model_dump(), f, indent=2, ensure_ascii=False)
