"""Structured logging for execution runs.

Events are rendered as JSON (production) or for the console (development).
Run and variation identifiers are bound through contextvars with
log_context(), so every event emitted while a variation is in flight carries
them. Run-scoped credentials are redacted before rendering.
"""

import logging
import re
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, cast

import structlog
from pydantic import SecretStr
from structlog.types import EventDict, WrappedLogger

REDACTED = "[REDACTED]"

# Compared after lower-casing and dropping "-" and "_"
SENSITIVE_KEYS: frozenset[str] = frozenset({
    "auth",
    "authorization",
    "bearer",
    "credential",
    "credentials",
    "functionapikeys",
    "generationapikey",
    "xgoogapikey",
})
SENSITIVE_SUFFIXES: tuple[str, ...] = ("apikey", "password", "passwd", "secret", "token")

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
# Credentials rendered into endpoint URLs (Gemini ?key=, OpenWeather &appid=)
URL_CREDENTIAL_PATTERN = re.compile(r"([?&](?:key|appid|api_key|apikey)=)[^&\s#]+", re.IGNORECASE)


def is_sensitive_key(key: str) -> bool:
    normalized = key.lower().replace("-", "").replace("_", "")
    return normalized in SENSITIVE_KEYS or normalized.endswith(SENSITIVE_SUFFIXES)


class PIIRedactor:
    """Processor that redacts credentials and e-mail addresses from events.

    Values are redacted when their key names a credential (exact names such
    as ``Authorization`` or any key ending in ``apikey``/``password``/
    ``token``), when they are pydantic SecretStr values, or when a string
    embeds an e-mail address or a credential query parameter.
    """

    def __call__(
        self,
        _logger: WrappedLogger,
        _method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        return cast(EventDict, self._redact_mapping(event_dict))

    def _redact_mapping(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {
            key: REDACTED if is_sensitive_key(str(key)) else self._redact_value(value)
            for key, value in data.items()
        }

    def _redact_value(self, value: Any) -> Any:
        if isinstance(value, SecretStr):
            return REDACTED
        if isinstance(value, Mapping):
            return self._redact_mapping(value)
        if isinstance(value, str):
            return self._redact_string(value)
        if isinstance(value, (list, tuple)):
            return [self._redact_value(item) for item in value]
        return value

    @staticmethod
    def _redact_string(value: str) -> str:
        value = URL_CREDENTIAL_PATTERN.sub(rf"\1{REDACTED}", value)
        return EMAIL_PATTERN.sub("[EMAIL]", value)


def setup_logging(
    level: str = "INFO",
    format: str = "json",
    redact_pii: bool = True,
) -> None:
    """Configure structured logging.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL);
            unknown names fall back to INFO
        format: "json" for production, "console" for development
        redact_pii: Whether to redact credentials and e-mail addresses
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if redact_pii:
        processors.append(PIIRedactor())
    if format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    level_num = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind identifiers to every event logged inside the block.

    Tasks created inside the block inherit the binding, so binding the
    run id before fanning out tags every variation's events.
    """
    bound = {key: str(value) for key, value in values.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound to ``name`` (typically the module's __name__)."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
