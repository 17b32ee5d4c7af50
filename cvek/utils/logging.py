"""Logging configuration for cvek.

Modules log through loguru's shared ``logger``. :func:`setup_logging`
attaches sinks that only receive records emitted from the ``cvek``
package and leaves sinks installed by the host application alone.
"""

import sys
from pathlib import Path

from loguru import logger

_LOGURU_DEFAULT_SINK = 0

_handler_ids: list[int] = []


def _remove_sink(handler_id: int) -> None:
    try:
        logger.remove(handler_id)
    except ValueError:
        # Already removed, e.g. by a global logger.remove()
        pass


def setup_logging(
    verbose: bool = False,
    log_file: Path | None = None,
) -> list[int]:
    """Route cvek log records to stderr and, optionally, a JSON file.

    Calling again replaces the sinks added by the previous call. The first
    call also drops loguru's default stderr sink, which would otherwise
    print every cvek record twice.

    Args:
        verbose: Show DEBUG records on stderr (chi-square fit parameters,
            bootstrap chunking). Otherwise INFO and above.
        log_file: If given, every cvek record from DEBUG up is appended to
            this file as one JSON object per line.

    Returns:
        The loguru handler ids of the installed sinks.
    """
    if not _handler_ids:
        _remove_sink(_LOGURU_DEFAULT_SINK)
    teardown_logging()

    _handler_ids.append(logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "INFO",
        filter="cvek",
        format="{time:HH:mm:ss} | <level>{level: <8}</level> | {name} | {message}",
    ))
    if log_file:
        _handler_ids.append(logger.add(
            log_file,
            level="DEBUG",
            filter="cvek",
            serialize=True,
        ))
    return list(_handler_ids)


def teardown_logging() -> None:
    """Remove the sinks added by :func:`setup_logging`."""
    for handler_id in _handler_ids:
        _remove_sink(handler_id)
    _handler_ids.clear()
