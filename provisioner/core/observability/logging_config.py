"""
Logging configuration: one setup call per process.

Called once by ``provisioner.main`` before anything runs. Modules log
through ``logging.getLogger(__name__)`` and inherit this config.

Level precedence:
    CLI flag  >  PROVISION_LOG_LEVEL  >  WARNING

PROVISION_LOG_FILE adds a file handler (full detail, level from
PROVISION_LOG_FILE_LEVEL or the console level). Every record carries
the current pipeline run id, so interleaved runs in one log file can
be told apart.
"""

from __future__ import annotations

import logging
import sys

# console format per level band: (format, datefmt)
_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d - %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(run_id)s] %(message)s", "%H:%M:%S"),
    logging.WARNING: ("%(message)s", None),
}

_FILE_FORMAT = "%(asctime)s %(levelname)-5s [%(run_id)s] %(name)s:%(lineno)d - %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# urllib emits through these when bootstrap scripts are downloaded
_NOISY_LOGGERS = ("urllib3", "charset_normalizer")


class RunIdFilter(logging.Filter):
    """Stamp every record with the active pipeline run id ("-" if none)."""

    def __init__(self) -> None:
        super().__init__()
        self.run_id = "-"

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self.run_id
        return True


_run_filter = RunIdFilter()


def set_run_id(run_id: str | None) -> None:
    """Attach ``run_id`` to all subsequent log records."""
    _run_filter.run_id = run_id or "-"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure the root logger for the whole process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        log_file_level: Level for the log file (default: ``level``).
        quiet_third_party: Keep noisy library loggers at WARNING unless
            the console is at DEBUG.
    """
    console_level = _parse_level(level)
    band = max(b for b in _CONSOLE_FORMATS if b <= max(console_level, logging.DEBUG))
    fmt, datefmt = _CONSOLE_FORMATS[band]

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    console.addFilter(_run_filter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        handler.addFilter(_run_filter)
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Convert a level name to its numeric constant (WARNING if unknown)."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
