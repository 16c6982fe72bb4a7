# paymentbot/core/logger.py
from __future__ import annotations
import logging
import sys
import structlog
from paymentbot.core.settings import settings

# third-party loggers that talk through the stdlib; at INFO they log every request
SDK_LOGGERS = ("stripe", "httpx", "httpcore")


def add_service(_, __, event_dict):
    event_dict.setdefault("app", settings.APP_NAME)
    event_dict.setdefault("env", settings.ENV)
    return event_dict


def _level(name: str, default: int) -> int:
    return getattr(logging, (name or "").upper(), default)


def setup_logging() -> None:
    level = _level(settings.LOG_LEVEL, logging.INFO)

    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_service,
    ]
    if settings.DEV_MODE:
        tail = [structlog.processors.ExceptionRenderer(), structlog.processors.KeyValueRenderer(sort_keys=True)]
    else:
        tail = [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]

    # SDK records go through the same processors so stdout stays one format
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[structlog.stdlib.add_logger_name, *shared],
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *tail],
        )
    )
    logging.basicConfig(level=level, handlers=[handler])

    sdk_level = _level(settings.SDK_LOG_LEVEL, logging.WARNING)
    for name in SDK_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)

    structlog.configure(
        processors=[*shared, *tail],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
