"""
Structured logging configuration using structlog.

Production and staging emit JSON lines, everything else gets the console
renderer (colours off under test so captured output stays readable).
Request ids bound by the middleware and booking ids bound by the services
travel through structlog contextvars.

Gateway secrets never reach a log line: values under the keys in
REDACTED_KEYS are masked before rendering.
"""

import logging
import sys

import structlog

from academy_booking.core.config import get_settings

_HANDLER_NAME = "academy_booking"

JSON_ENVIRONMENTS = {"production", "staging"}

REDACTED_KEYS = frozenset({"signature", "gateway_signature", "key_secret", "authorization"})


def redact_secrets(logger, method_name, event_dict):
    for key in REDACTED_KEYS.intersection(event_dict):
        value = event_dict[key]
        if value:
            event_dict[key] = f"{str(value)[:4]}***"
    return event_dict


def _add_environment(environment: str):
    def processor(logger, method_name, event_dict):
        event_dict.setdefault("env", environment)
        return event_dict

    return processor


def setup_logging() -> None:
    settings = get_settings()
    json_output = settings.ENVIRONMENT in JSON_ENVIRONMENTS

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]

    if json_output:
        shared_processors.append(_add_environment(settings.ENVIRONMENT))
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=settings.ENVIRONMENT != "test")

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer]
        )
    )

    root_logger = logging.getLogger()
    # setup_logging runs once per lifespan, and tests start many
    for existing in list(root_logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
