import os

"""Common configuration settings."""

GEMINI_API_BASE = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")

ENDPOINTS = {
    "generate_content": GEMINI_API_BASE + "/models/{model}:generateContent",
    "predict": GEMINI_API_BASE + "/models/{model}:predict",
}

DEFAULT_REQUEST_TIMEOUT_SECS = 120
DEFAULT_TEMPERATURE = 0.3

KEY_FILE_SETTINGS = {
    "path": os.getenv("AI_READER_KEYS_FILE", "keys_pool/google.env"),
}

STATE_SETTINGS = {
    # memory | file | redis
    "backend": os.getenv("AI_READER_STATE_BACKEND", "file").lower(),
    "file_path": os.getenv("AI_READER_STATE_FILE", "data/routing_state.json"),
    "redis_key": "ai_reader:routing_state",
}

RATE_LIMIT_SETTINGS = {
    "generate_text": os.getenv("RATE_LIMIT_TEXT", "30/minute"),
    "generate_image": os.getenv("RATE_LIMIT_IMAGE", "10/minute"),
}
