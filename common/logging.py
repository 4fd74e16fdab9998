"""Logging helpers with operation correlation."""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
ROOT_LOGGER = "xai_forge"


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def configure_level(level: str | int) -> None:
    get_logger().setLevel(level)


@contextmanager
def operation_context(operation: str, **fields: Any) -> Iterator[dict[str, Any]]:
    """Log the outcome and duration of one service call.

    The yielded mapping carries the generated ``operation_id`` and can be
    extended by the caller; its content is attached to the final log record.
    """

    logger = get_logger("operations")
    context: dict[str, Any] = {"operation": operation, "operation_id": uuid.uuid4().hex, **fields}
    started = time.perf_counter()
    try:
        yield context
    except Exception:
        duration_ms = (time.perf_counter() - started) * 1000
        logger.warning(
            "%s failed after %.2f ms",
            operation,
            duration_ms,
            extra={"context": dict(context)},
        )
        raise
    duration_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "%s completed in %.2f ms",
        operation,
        duration_ms,
        extra={"context": dict(context)},
    )


__all__ = ["DEFAULT_FORMAT", "configure_level", "get_logger", "operation_context"]
