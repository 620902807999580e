import logging
import os

import structlog
from structlog.contextvars import merge_contextvars
from structlog.processors import StackInfoRenderer, TimeStamper, format_exc_info
from structlog.stdlib import add_log_level

DEBUG = os.getenv("DEADLYZE_ENV", "dev") == "dev"
LOG_LEVEL = os.getenv("DEADLYZE_LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()

# chatty libraries only surface warnings
QUIET_LOGGERS = ("django", "httpx", "httpcore", "uvicorn.access")
PROJECT_LOGGERS = ("apps", "common", "config")

shared_processors = [
    merge_contextvars,
    add_log_level,
    TimeStamper(fmt="iso", utc=True),
    StackInfoRenderer(),
    format_exc_info,
]


def _logger(level: str) -> dict:
    return {"handlers": ["console"], "level": level, "propagate": False}


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "console": {
            "()": "structlog.stdlib.ProcessorFormatter",
            "processor": structlog.dev.ConsoleRenderer(colors=DEBUG, pad_event=0, pad_level=False),
            "foreign_pre_chain": shared_processors,
        },
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "console"},
    },
    "loggers": {
        "": _logger("INFO"),
        **{name: _logger("WARNING") for name in QUIET_LOGGERS},
        **{name: _logger(LOG_LEVEL) for name in PROJECT_LOGGERS},
    },
}

structlog.configure(
    processors=[
        *shared_processors,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, LOG_LEVEL, logging.INFO)),
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)
