import hashlib


def credential_fingerprint(credential: str) -> str:
    """Stable identifier for a credential, safe to persist and log.

    Routing cursors are stored under this value so that they follow the key
    itself when the configured key list is reordered or edited.
    """
    return hashlib.sha256(credential.encode("utf-8")).hexdigest()[:16]


def key_identifier(key: str) -> str:
    """Short human-readable label for log lines."""
    if len(key) <= 8:
        return "key_****"
    return f"key_{key[:4]}...{key[-4:]}"
