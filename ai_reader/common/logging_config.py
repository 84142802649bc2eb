import json
import logging
import re
import traceback
from datetime import datetime, timezone

LOGGER_NAME = "AIReaderGateway"


class ApiKeyFilter(logging.Filter):
    KEY_PATTERN = re.compile(
        # key=VALUE in URL query strings (the Gemini API takes the key this way)
        r"(?P<prefix>key=)(?P<key1>[^&\s\"']+)"
        r"|"
        r"(?P<bearer_prefix>Bearer\s+|Authorization:\s*Bearer\s*)(?P<key2>[^\"'\s]+)"
        r"|"
        # Known formats, used when the key appears without a prefix
        r"(?P<key3>"
        r"AIzaSy[A-Za-z0-9\-_]{33}|"
        r"sk-[a-zA-Z0-9\-_]{20,}"
        r")"
    )

    KNOWN_KEYS = set()

    @classmethod
    def add_sensitive_keys(cls, keys):
        """Registers a list of keys to be explicitly masked."""
        if not keys:
            return
        cls.KNOWN_KEYS.update(str(k) for k in keys if k)

    @classmethod
    def replace_sensitive_keys(cls, old_keys, new_keys):
        """Stops masking keys that were removed from the settings and registers the new ones."""
        retired = {str(k) for k in old_keys or [] if k} - {str(k) for k in new_keys or [] if k}
        cls.KNOWN_KEYS.difference_update(retired)
        cls.add_sensitive_keys(new_keys)

    def mask(self, s: str) -> str:
        def replacer(match):
            if match.group("prefix"):
                return f"{match.group('prefix')}***MASKED***"
            if match.group("bearer_prefix"):
                return f"{match.group('bearer_prefix')}***MASKED***"
            return "***MASKED***"

        s = self.KEY_PATTERN.sub(replacer, s)

        # Exact match masking for keys that do not look like any known format.
        for key in self.KNOWN_KEYS:
            if key in s:
                s = s.replace(key, "***MASKED***")
        return s

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.mask(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self.mask(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            else:
                record.args = tuple(
                    self.mask(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )
        return True


class JSONFormatter(logging.Formatter):
    """
    Formats log records as a JSON string.
    """

    def format(self, record):
        log_record = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
        }

        attempt = getattr(record, "attempt", None)
        if isinstance(attempt, dict):
            log_record["attempt"] = attempt

        if record.exc_info:
            log_record["exception"] = "".join(
                traceback.format_exception(*record.exc_info)
            )

        return json.dumps(log_record, ensure_ascii=False)


def setup_json_logging(level: int = logging.INFO):
    """
    Sets up the root logger to use the JSONFormatter.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    # Safety net for every record reaching root
    handler.addFilter(ApiKeyFilter())

    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    # httpx logs full request URLs, and the credential travels in the query string.
    for logger_name in ["httpx", "httpcore", LOGGER_NAME]:
        l = logging.getLogger(logger_name)
        # Prevent stale filters from stacking up on reload
        l.filters.clear()
        l.addFilter(ApiKeyFilter())
        l.propagate = True

    logging.info("JSON logging configured.")
