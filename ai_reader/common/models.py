from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ai_reader.config.base.models import DEFAULT_IMAGE_MODEL, DEFAULT_TEXT_MODEL
from ai_reader.config.base.settings import DEFAULT_REQUEST_TIMEOUT_SECS, DEFAULT_TEMPERATURE


class RequestKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"


class ReaderSettings(BaseModel):
    """
    User-editable settings consumed by the routing layer.
    Mirrors the settings panel of the reader front-end.
    """

    api_keys: List[str] = Field(
        default_factory=list,
        description="Ordered list of API credentials. First entry is tried first on a fresh install."
    )
    text_api_key: str = Field(
        default="",
        description="Legacy single credential, used only when api_keys is empty."
    )
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    use_fallback: bool = True
    request_timeout_secs: int = DEFAULT_REQUEST_TIMEOUT_SECS
    debug_mode: bool = False
    temperature: float = DEFAULT_TEMPERATURE

    @field_validator("api_keys", mode="before")
    @classmethod
    def split_key_string(cls, value):
        # The settings form submits one textarea; accept comma or newline separated keys.
        if value is None:
            return []
        if isinstance(value, str):
            return [part for part in value.replace(",", "\n").splitlines()]
        return value

    @field_validator("request_timeout_secs", mode="before")
    @classmethod
    def normalize_timeout(cls, value):
        try:
            value = int(value)
        except (TypeError, ValueError):
            return DEFAULT_REQUEST_TIMEOUT_SECS
        return value if value > 0 else DEFAULT_REQUEST_TIMEOUT_SECS

    def preferred_model(self, kind: RequestKind) -> str:
        return self.text_model if kind == RequestKind.TEXT else self.image_model

    def masked(self) -> dict:
        """Returns a dict safe to send to clients (credentials reduced to their tails)."""
        data = self.model_dump()
        data["api_keys"] = [f"...{k.strip()[-4:]}" for k in self.api_keys if k.strip()]
        data["text_api_key"] = f"...{self.text_api_key.strip()[-4:]}" if self.text_api_key.strip() else ""
        return data


class SettingsUpdateRequest(BaseModel):
    api_keys: Optional[Union[List[str], str]] = None
    text_api_key: Optional[str] = None
    text_model: Optional[str] = None
    image_model: Optional[str] = None
    use_fallback: Optional[bool] = None
    request_timeout_secs: Optional[int] = None
    debug_mode: Optional[bool] = None
    temperature: Optional[float] = None


class TextPayload(BaseModel):
    prompt: str
    system_instruction: str = ""
    expect_json: bool = False


class ImagePayload(BaseModel):
    prompt: str


class TextResult(BaseModel):
    text: str
    model: Optional[str] = None


class ImageResult(BaseModel):
    """Either an inline image (as a data URL) or, on the text-only provider path, plain text."""

    data_url: Optional[str] = None
    mime_type: Optional[str] = None
    text: Optional[str] = None
    model: Optional[str] = None


class RoutingState(BaseModel):
    """
    Persisted routing memory: which credential to try first and, per request kind,
    where each credential resumes in its model stack.
    Cursor maps are keyed by credential fingerprint, not list position.
    """

    active_credential: int = 0
    cursors: Dict[str, Dict[str, int]] = Field(default_factory=dict)
