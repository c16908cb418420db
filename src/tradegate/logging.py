"""Structured logging configuration using structlog with async context propagation.

Secret material is masked by a processor before rendering, so a stray
``api_secret=...`` keyword never reaches a log sink.
"""

import logging
import os

import structlog

_REDACTED = "***"

# Event keys that may carry plaintext or ciphertext credentials.
SECRET_KEYS = frozenset(
    {
        "api_key",
        "api_secret",
        "secret",
        "passphrase",
        "password",
        "encryption_key",
        "token",
        "encrypted_api_key",
        "encrypted_api_secret",
        "encrypted_passphrase",
    }
)


def redact_secrets(
    logger: object, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Mask values of event keys listed in SECRET_KEYS."""
    for key in event_dict.keys() & SECRET_KEYS:
        if event_dict[key]:
            event_dict[key] = _REDACTED
    return event_dict


def setup_logging(log_level: str = "INFO") -> None:
    """Configure structlog with JSON or console rendering.

    Uses structlog.contextvars for async context propagation, so a request
    handler can bind ``principal_id`` once and every log line below it
    carries it. Rendering format is controlled by the LOG_FORMAT env var:
    - "json" for production (machine-readable)
    - "console" for development (human-readable, default)
    """
    log_format = os.environ.get("LOG_FORMAT", "console").lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # ccxt logs request/response bodies at DEBUG, which include signed URLs
    logging.getLogger("ccxt").setLevel(max(root_logger.level, logging.INFO))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
