import logging
import sys
from typing import Any, Optional

import structlog
from rich.console import Console
from structlog.types import Processor

from initkit.config import settings
from initkit.logging_processors import (
    add_run_context,
    add_service_context,
    sanitize_sensitive_data,
)


def setup_logging() -> None:
    timestamper = structlog.processors.TimeStamper(fmt="iso")

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service_context,
        add_run_context,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        timestamper,
        # Sanitize sensitive data (should be last before rendering)
        sanitize_sensitive_data,
    ]

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.log_level))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


class PluginLogger:
    """User-facing logger handed to plugins through their context.

    Every call is recorded as a structured log event. When a rich console is
    attached, the message is also echoed to the terminal.
    """

    def __init__(self, name: str = "initkit", console: Optional[Console] = None):
        self._logger = get_logger(name)
        self.console = console

    def _echo(self, message: str, style: Optional[str] = None) -> None:
        if self.console is not None:
            self.console.print(message, style=style, markup=False, highlight=False)

    def info(self, message: str, **fields: Any) -> None:
        self._logger.info(message, **fields)
        self._echo(message)

    def success(self, message: str, **fields: Any) -> None:
        self._logger.info(message, outcome="success", **fields)
        self._echo(message, "green")

    def warning(self, message: str, **fields: Any) -> None:
        self._logger.warning(message, **fields)
        self._echo(message, "yellow")

    def error(self, message: str, **fields: Any) -> None:
        self._logger.error(message, **fields)
        self._echo(message, "bold red")

    def step(self, number: int, message: str) -> None:
        self._logger.info(message, step=number)
        self._echo(f"[{number}] {message}", "bold cyan")

    def blank(self) -> None:
        self._echo("")
