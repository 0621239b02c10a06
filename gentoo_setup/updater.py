"""Unattended full system update: ``emerge --sync`` then ``emerge -uDN @world``.

Installed by ``gentoo-update-scheduler`` and run from root's crontab.
"""

from __future__ import annotations

import argparse
import logging
import os
import time
from typing import Optional

from .lib.command import CommandError, have_cmd, run_cmd
from .lib.env import PATHS
from .logging_utils import configure_logging

logger = logging.getLogger(__name__)

TAG = "gentoo-system-update"
STAGES = (
    ["emerge", "--sync"],
    ["emerge", "-uDN", "@world"],
)


def notify(msg: str, *, dry_run: bool = False) -> None:
    """Desktop notification, wall, and syslog, each only if available."""

    if have_cmd("notify-send"):
        run_cmd(["notify-send", "Gentoo Update", msg], check=False, dry_run=dry_run)
    if have_cmd("wall"):
        run_cmd(["wall"], input_text=f"Gentoo Update: {msg}\n", check=False, dry_run=dry_run)
    if have_cmd("logger"):
        run_cmd(["logger", "-t", TAG, msg], check=False, dry_run=dry_run)


def _utc_now() -> str:
    return time.strftime("%Y-%m-%d %H:%M:%S UTC", time.gmtime())


def run(*, log_path: str = PATHS.update_log, dry_run: bool = False) -> int:
    actual = configure_logging(log_path=log_path, mode="a")
    try:
        os.chmod(actual, 0o644)
    except OSError as e:
        logger.warning("Could not chmod %s: %s", actual, e)

    notify("Starting full system update (emerge --sync && emerge -uDN @world)", dry_run=dry_run)
    logger.info("==== Starting at %s ====", _utc_now())

    for argv in STAGES:
        try:
            run_cmd(argv, stream=True, dry_run=dry_run)
        except CommandError:
            logger.error("Update failed during '%s'", " ".join(argv))
            notify(f"Update failed during '{' '.join(argv)}'. See {actual}", dry_run=dry_run)
            return 1

    logger.info("==== Completed at %s ====", _utc_now())
    notify("System update completed successfully", dry_run=dry_run)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog=TAG, description="Sync the Portage tree and update @world")
    p.add_argument("--log", default=PATHS.update_log)
    p.add_argument("--dry-run", action="store_true")
    args = p.parse_args(argv)
    return run(log_path=args.log, dry_run=bool(args.dry_run))


if __name__ == "__main__":
    raise SystemExit(main())
