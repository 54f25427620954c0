"""Loguru configuration helpers for consistent structured logging."""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from os import PathLike
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger

from market_aggregator import __version__

PathLikeArg = Union[str, PathLike]

_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | "
    "req={extra[request_id]} | env={extra[environment]} | "
    "ver={extra[service_version]} | {message}"
)

_ctx_request_id: ContextVar[str] = ContextVar("log_request_id", default="-")
_ctx_environment: ContextVar[str] = ContextVar("log_environment", default="local")

_CONTEXT_VARS: Dict[str, ContextVar[str]] = {
    "request_id": _ctx_request_id,
    "environment": _ctx_environment,
}


def _inject_context(record: Dict[str, Any]) -> None:
    extra = record["extra"]
    for key, ctx in _CONTEXT_VARS.items():
        extra.setdefault(key, ctx.get())
    extra.setdefault("service_version", __version__)


def _std_logging_sink(message) -> None:
    """Forward loguru records to the stdlib root logger (pytest caplog, Sentry)."""
    record = message.record
    exc = record["exception"]
    exc_info = (exc.type, exc.value, exc.traceback) if exc else None

    log_record = logging.LogRecord(
        name=record["name"] or "market_aggregator",
        level=record["level"].no,
        pathname=record["file"].path,
        lineno=record["line"],
        msg=record["message"],
        args=(),
        exc_info=exc_info,
        func=record["function"],
    )
    for key, value in record["extra"].items():
        setattr(log_record, key, value)
    logging.getLogger(log_record.name).handle(log_record)


def setup_logging(*, force: bool = False, level: str | None = None) -> None:
    """Configure the stdout sink and the stdlib bridge once per process."""
    if not force and getattr(setup_logging, "_configured", False):
        return

    logger.remove()

    log_level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    environment = os.getenv("ENV", "local")

    logger.configure(
        extra={
            "service_version": __version__,
            "environment": environment,
            "request_id": "-",
        },
        patcher=_inject_context,
    )
    _ctx_environment.set(environment)

    logger.add(
        sys.stdout,
        level=log_level,
        format=_LOG_FORMAT,
        enqueue=False,
        backtrace=False,
        diagnose=False,
    )
    logger.add(
        _std_logging_sink,
        level=log_level,
        enqueue=False,
        backtrace=False,
        diagnose=False,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))
    setup_logging._configured = True  # type: ignore[attr-defined]


def setup_test_logging(
    path: Optional[PathLikeArg] = None,
    *,
    level: Optional[str] = None,
    filename: str = "pytest.log",
) -> Optional[Path]:
    """Logging for test sessions; ``path`` may be a log file or a directory.

    Returns the file the sink writes to, if any.
    """
    effective_level = (level or os.getenv("PYTEST_LOGLEVEL") or "DEBUG").upper()
    setup_logging(force=True, level=effective_level)
    if path is None:
        return None

    target = Path(path)
    if target.suffix != ".log":
        target.mkdir(parents=True, exist_ok=True)
        target = target / filename
    target.parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        str(target),
        level=effective_level,
        format=_LOG_FORMAT,
        enqueue=False,
        backtrace=False,
        diagnose=False,
    )
    return target


@contextmanager
def logging_context(**values: str):
    """Bind structured fields (e.g. request_id) for the duration of the block."""
    tokens = []
    for key, value in values.items():
        ctx = _CONTEXT_VARS.get(key)
        if ctx is not None:
            tokens.append((ctx, ctx.set(value or "-")))
    try:
        with logger.contextualize(**values):
            yield
    finally:
        for ctx, token in reversed(tokens):
            ctx.reset(token)


__all__ = ["setup_logging", "setup_test_logging", "logging_context"]
