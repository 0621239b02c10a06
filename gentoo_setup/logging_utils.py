from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def timestamped_log_path(prefix: str, directory: str = "/var/log") -> str:
    """e.g. /var/log/gentoo-install-20250302_170343.log"""

    return os.path.join(directory, f"{prefix}-{time.strftime('%Y%m%d_%H%M%S')}.log")


def configure_logging(
    log_path: str,
    level: int = logging.INFO,
    also_console: bool = True,
    mode: str = "a",
) -> str:
    """Configure logging for one tool run.

    Every command and decision goes to log_path. If it cannot be opened (e.g.
    running unprivileged outside a live environment), we fall back to a file of
    the same name in the working directory, while still *reporting* the
    intended path in state/logs.

    mode="w" truncates the log for tools that keep only the latest run.

    Returns the actual file path being used.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_gentoo_setup_configured", False):
        return getattr(logger, "_gentoo_setup_log_path", log_path)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = []

    file_handler: Optional[logging.Handler] = None
    chosen_path = log_path
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode=mode)
    except OSError:
        # Fall back to a writable location.
        chosen_path = str(Path.cwd() / os.path.basename(log_path))
        file_handler = logging.FileHandler(chosen_path, mode=mode)
    file_handler.setFormatter(fmt)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_gentoo_setup_configured", True)
    setattr(logger, "_gentoo_setup_log_path", chosen_path)

    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
    return chosen_path
