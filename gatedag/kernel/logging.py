"""Centralized logging configuration for gatedag using Loguru.

Provides consistent logging across the scheduler, stores and adapters with:
- Multiple output formats (console, JSON, structured, rich)
- Environment-based defaults
- A run-scoped correlation id
- Idempotent configuration

Examples
--------
Basic usage:

>>> from gatedag.kernel.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Stage {stage} started", stage="build")

Configure logging globally::

    from gatedag.kernel.logging import configure_logging
    configure_logging(level="DEBUG", format="rich")
"""

from __future__ import annotations

import contextvars
import os
import sys
from contextlib import suppress
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from loguru import logger
from rich.logging import RichHandler

if TYPE_CHECKING:
    from loguru import Logger

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["console", "json", "structured", "rich"]

_CURRENT_CONFIG: dict | None = None
_HANDLER_IDS: list[int] = []

# Set to the pipeline run id while a run is executing
correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar("correlation_id", default="-")


def _inject_correlation_id(record: dict) -> None:
    record["extra"].setdefault("cid", correlation_id.get())


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "structured",
    output_file: str | Path | None = None,
    use_color: bool = True,
    include_timestamp: bool = True,
    force_reconfigure: bool = False,
    backtrace: bool = True,
    diagnose: bool = False,
) -> None:
    """Configure global logging for gatedag.

    Calling it again with the same settings is a no-op; only handlers added
    by this function are replaced on reconfiguration.

    Parameters
    ----------
    level : LogLevel, default="INFO"
        Minimum log level to output
    format : LogFormat, default="structured"
        Output format:
        - "console": plain single-line output
        - "json": serialized records for log aggregation
        - "structured": colored loguru format with run correlation id
        - "rich": Rich console handler
    output_file : str | Path | None, default=None
        Optional file that additionally receives JSON records
    use_color : bool, default=True
        Use ANSI colors in structured format (auto-disabled for non-TTY)
    include_timestamp : bool, default=True
        Include timestamp in log output
    force_reconfigure : bool, default=False
        Reconfigure even if the settings did not change
    backtrace : bool, default=True
        Extended tracebacks on exceptions
    diagnose : bool, default=False
        Show variable values in tracebacks (leaks secrets; keep off in CI)
    """
    global _CURRENT_CONFIG

    current_config = {
        "level": level,
        "format": format,
        "output_file": str(output_file) if output_file else None,
        "use_color": use_color,
        "include_timestamp": include_timestamp,
        "backtrace": backtrace,
        "diagnose": diagnose,
    }

    if not force_reconfigure and current_config == _CURRENT_CONFIG:
        return

    if _CURRENT_CONFIG is None:
        # loguru's built-in stderr handler
        with suppress(ValueError):
            logger.remove(0)
    for handler_id in _HANDLER_IDS:
        with suppress(ValueError):
            logger.remove(handler_id)
    _HANDLER_IDS.clear()

    logger.configure(patcher=_inject_correlation_id)

    if format == "rich":
        rich_handler = RichHandler(
            rich_tracebacks=True,
            markup=False,
            show_time=include_timestamp,
            show_level=True,
            show_path=False,
        )
        handler_id = logger.add(
            sink=rich_handler,
            level=level,
            format="[{extra[cid]}] {message}",
            backtrace=backtrace,
            diagnose=diagnose,
        )
    elif format == "json":
        handler_id = logger.add(
            sink=sys.stderr,
            level=level,
            serialize=True,
            backtrace=backtrace,
            diagnose=diagnose,
        )
    elif format == "structured":
        timestamp_fmt = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> " if include_timestamp else ""
        colorize = use_color and sys.stderr.isatty()
        color_level = "<level>{level: <8}</level>" if colorize else "{level: <8}"
        structured_format = (
            f"{timestamp_fmt}[{color_level}]"
            "<cyan>{extra[cid]}</cyan> <cyan>{name}:{function}:{line}</cyan> | "
            "<level>{message}</level>"
        )
        handler_id = logger.add(
            sink=sys.stderr,
            level=level,
            format=structured_format,
            colorize=colorize,
            backtrace=backtrace,
            diagnose=diagnose,
        )
    else:
        timestamp_fmt = "{time:YYYY-MM-DD HH:mm:ss} " if include_timestamp else ""
        handler_id = logger.add(
            sink=sys.stderr,
            level=level,
            format=f"{timestamp_fmt}{{level: <8}} | {{extra[cid]}} | {{name}} | {{message}}",
            colorize=False,
            backtrace=backtrace,
            diagnose=diagnose,
        )
    _HANDLER_IDS.append(handler_id)

    if output_file:
        output_path = Path(output_file)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        handler_id = logger.add(
            sink=output_path,
            level=level,
            serialize=True,
            rotation="10 MB",
            retention="1 week",
            backtrace=backtrace,
            diagnose=diagnose,
        )
        _HANDLER_IDS.append(handler_id)

    _CURRENT_CONFIG = current_config


@lru_cache(maxsize=256)
def get_logger(name: str) -> Logger:
    """Get a logger bound with the given module name.

    Parameters
    ----------
    name : str
        Logger name, typically ``__name__`` of the calling module

    Returns
    -------
    loguru.Logger
        Logger bound with ``module=name``; the run correlation id is
        attached to every record when it is emitted.
    """
    _ensure_configured()
    return logger.bind(module=name)


def set_correlation_id(cid: str) -> contextvars.Token[str]:
    """Attach *cid* (normally a run id) to all records in the current context."""
    return correlation_id.set(cid)


def reset_correlation_id(token: contextvars.Token[str]) -> None:
    """Restore the correlation id that was active before ``set_correlation_id``."""
    correlation_id.reset(token)


def get_correlation_id() -> str:
    """Return the current correlation id, or "-" if none is set.

    Examples
    --------
    >>> from gatedag.kernel.logging import get_correlation_id
    >>> get_correlation_id()
    '-'
    """
    return correlation_id.get()


def _ensure_configured() -> None:
    """Apply default configuration on first use.

    Honors GATEDAG_LOG_LEVEL and GATEDAG_LOG_FORMAT.
    """
    if _CURRENT_CONFIG is None:
        level = os.getenv("GATEDAG_LOG_LEVEL", "INFO").upper()
        format_type = os.getenv("GATEDAG_LOG_FORMAT", "structured").lower()
        configure_logging(level=level, format=format_type)  # type: ignore[arg-type]
