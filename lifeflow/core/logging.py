"""
structlog setup for the rules engine.

The batch CLI calls configure_logging() once from Settings (log_level,
json_logs). Every lifeflow module logs snake_case events through
get_logger(__name__). While a message is processed the batch processor
binds owner_id and message_id with bind_context(), so handler and
classifier events carry them without passing them around.
"""

import logging
import sys

import structlog


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """
    Route lifeflow events through stdlib logging to stdout.

    Args:
        log_level: Settings.log_level or the --log-level CLI override
        json_output: Settings.json_logs; one JSON object per event when set,
            coloured console lines for local runs otherwise
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    # httpx logs every request URL at INFO, including webhook targets
    logging.getLogger("httpx").setLevel(max(logging.WARNING, logging.getLogger().level))

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for a lifeflow module; bound message context is merged in at emit time."""
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Bind key/value pairs to every log line emitted in the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop all context bound with bind_context()."""
    structlog.contextvars.clear_contextvars()
