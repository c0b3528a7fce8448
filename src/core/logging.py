"""Structured logging setup using structlog.

Detection runs bind their scope (product, entity, alert id) into contextvars,
so every event logged below a batch or a remediation carries it without
threading loggers through the call chain.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

from src.core.config import LoggingConfig, get_settings
from src.core.types import Entity


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging(
    level: str | None = None,
    fmt: str | None = None,
    config: LoggingConfig | None = None,
) -> None:
    """Route structlog and stdlib logging through one renderer.

    Args:
        level: Log level override (e.g. "DEBUG"). Uses config if None.
        fmt: Renderer override ("json" or "console"). Uses config if None.
        config: Logging section to use instead of the global settings.
    """
    cfg = config or get_settings().logging
    log_level = getattr(logging, (level or cfg.level).upper(), logging.INFO)

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if cfg.file:
        Path(cfg.file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(cfg.file, encoding="utf-8"))

    # The file handler always gets JSON so batch logs stay machine-readable.
    formats = [fmt or cfg.format, "json"]
    for handler, handler_fmt in zip(handlers, formats, strict=False):
        handler.setFormatter(structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(handler_fmt),
            ],
        ))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(log_level)

    for name in cfg.quiet_loggers:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


@contextmanager
def batch_context(product: str, **extra: object) -> Iterator[None]:
    """Bind a detection batch's product to every event logged inside it."""
    with structlog.contextvars.bound_contextvars(product=product, **extra):
        yield


@contextmanager
def entity_context(entity: Entity) -> Iterator[None]:
    with structlog.contextvars.bound_contextvars(
        entity_id=entity.id,
        entity_type=entity.type.value,
    ):
        yield


@contextmanager
def alert_context(alert_id: str) -> Iterator[None]:
    with structlog.contextvars.bound_contextvars(alert_id=alert_id):
        yield
