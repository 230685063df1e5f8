# cenownik/config/logging_config.py

"""Per-run log file for the price watcher.

Every launch of ``main.py`` (service, one-off sweep or CLI query) writes to
its own ``logs/run_<YYYYMMDD_HHMMSS>.log``.  The file receives everything
from the ``cenownik`` logger tree at DEBUG: ``cenownik.monitor`` sweep
progress, ``cenownik.scheduler`` ticks and cron reloads,
``cenownik.extractors.<source>`` fetch retries and
``cenownik.notifications.<channel>`` delivery attempts.

APScheduler reports missed and overlapping ticks on its own ``apscheduler``
logger; its warnings are copied into the same file so a skipped tick shows
up next to the sweep it collided with.  stderr only gets
``CONSOLE_LOG_LEVEL`` and above, leaving stdout free for JSON output.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from cenownik.config.settings import Settings

_DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(module)s:%(funcName)s:%(lineno)d | "
    "%(message)s"
)

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_SCHEDULER_LIBRARY_LOGGER = "apscheduler"


def setup_logging(
    console_level: str | None = None,
    logs_dir: Path | None = None,
) -> Path:
    """Attach the run's file and stderr handlers to the ``cenownik`` logger.

    Args:
        console_level: Level name for the stderr handler.  Defaults to
            ``Settings.CONSOLE_LOG_LEVEL``; unknown names fall back to
            WARNING.
        logs_dir: Directory for run logs.  Defaults to ``Settings.LOGS_DIR``.

    Returns:
        Path of this run's log file.  Repeated calls keep the handlers
        installed by the first one.
    """
    logs_dir = logs_dir or Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"run_{timestamp}.log"

    app_logger = logging.getLogger("cenownik")
    app_logger.setLevel(logging.DEBUG)
    if app_logger.handlers:
        return log_file

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)
    )

    level_name = (console_level or Settings.CONSOLE_LOG_LEVEL).upper()
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, level_name, logging.WARNING))
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    app_logger.addHandler(file_handler)
    app_logger.addHandler(console_handler)

    scheduler_logger = logging.getLogger(_SCHEDULER_LIBRARY_LOGGER)
    scheduler_logger.setLevel(logging.WARNING)
    scheduler_logger.addHandler(file_handler)

    app_logger.info("Logging initialised, log file: %s", log_file)
    return log_file
