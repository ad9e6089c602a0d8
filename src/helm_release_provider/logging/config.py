"""structlog setup for handler invocations, the proxy function and the CLI.

Lambda forwards stdout to CloudWatch, so deployed code logs one JSON
object per line. The CLI renders the same events for a terminal.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Name of the stdout handler this module owns on the root logger
_HANDLER_NAME = "helm_release_provider"

# SDK loggers that drown out release events below WARNING
NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "kubernetes", "httpx")


def _level(verbose: bool, debug: bool) -> int:
    if debug:
        return logging.DEBUG
    return logging.INFO if verbose else logging.WARNING


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(json_output: bool, debug: bool) -> structlog.types.Processor:
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=True,
        exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=debug),
    )


def configure_logging(
    verbose: bool = False,
    debug: bool = False,
    json_output: bool = True,
) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    A warm Lambda container runs this once per invocation; the handler
    installed by the previous call is swapped out rather than duplicated.

    Args:
        verbose: Log at INFO instead of WARNING.
        debug: Log at DEBUG and let SDK loggers through.
        json_output: JSON lines (deployed) or console rendering (CLI).
    """
    level = _level(verbose, debug)
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(json_output, debug),
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    for stale in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(stale)
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    sdk_level = logging.DEBUG if debug else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)


def bind_invocation(**context: Any) -> None:
    """Attach ``context`` to every event logged until the next invocation.

    Replaces whatever the previous invocation in this process bound.
    """
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**context)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """A structlog logger, bound to ``initial_context`` when given."""
    logger: structlog.BoundLogger = structlog.get_logger(name)
    return logger.bind(**initial_context) if initial_context else logger
