"""
Structured logging with structlog.

`setup_logging` is called once at app import; every module grabs its own logger with
`get_logger(__name__)` and logs events as snake_case names plus key/value context.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
  numeric_level = getattr(logging, level.upper(), logging.INFO)
  logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)

  shared_processors: list[Any] = [
    merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
  ]
  if fmt == "json":
    renderer: list[Any] = [structlog.processors.EventRenamer("message"), structlog.processors.JSONRenderer()]
  else:
    renderer = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]

  structlog.configure(
    processors=shared_processors + renderer,
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
  )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
  return structlog.get_logger(name)


def bind_request_context(**kwargs: Any) -> None:
  """Attach key/values (request id, actor id) to every log line of the current task."""
  bind_contextvars(**kwargs)


def clear_request_context() -> None:
  clear_contextvars()

