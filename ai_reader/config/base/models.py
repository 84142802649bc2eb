"""Canonical model orders per request kind, ranked best-first."""

TEXT_MODEL_ORDER = [
    "gemini-3.1-pro-preview",
    "gemini-3-flash-preview",
    "gemini-2.5-pro",
    "gemini-2.5-flash",
    "gemini-2.5-flash-lite",
    "gemini-2.0-flash",
    "gemini-flash-latest",
]

IMAGE_MODEL_ORDER = [
    "imagen-3.0-generate-002",
    "gemini-3-pro-image-preview",
    "gemini-2.0-flash-preview-image-generation",
]

MODEL_ORDERS = {
    "text": TEXT_MODEL_ORDER,
    "image": IMAGE_MODEL_ORDER,
}

DEFAULT_TEXT_MODEL = TEXT_MODEL_ORDER[0]
DEFAULT_IMAGE_MODEL = IMAGE_MODEL_ORDER[0]
