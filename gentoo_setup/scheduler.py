"""Schedule unattended Gentoo updates in root's crontab.

Jobs run at 02:00 on the 28th with a chosen month interval.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Dict, Optional, Sequence, Tuple

from .lib.command import have_cmd, run_cmd
from .lib.env import PATHS, is_root
from .logging_utils import configure_logging
from .prompts import Prompter
from .steps.common import write_file

logger = logging.getLogger(__name__)

FREQUENCIES: Dict[str, Tuple[str, str]] = {
    "1": ("Monthly (on the 28th)", "0 2 28 * *"),
    "2": ("Every 3 months (quarterly on the 28th)", "0 2 28 */3 *"),
    "3": ("Every 6 months (bi-annually on the 28th)", "0 2 28 */6 *"),
    "4": ("Every 12 months (annually on the 28th)", "0 2 28 */12 *"),
}


def schedule_for(choice: str) -> str:
    try:
        return FREQUENCIES[str(choice).strip()][1]
    except KeyError:
        raise ValueError("Invalid selection. Please run again and choose 1-4.") from None


def ensure_root(argv: Sequence[str]) -> None:
    """Re-exec through ``sudo -E`` when not root."""

    if is_root():
        return
    if not have_cmd("sudo"):
        raise RuntimeError("Please run this as root (e.g. sudo gentoo-update-scheduler)")
    print("This requires root privileges. Re-running via sudo...", file=sys.stderr)
    os.execvp("sudo", ["sudo", "-E", sys.executable, "-m", "gentoo_setup.scheduler", *argv])


def render_update_script(python: str = sys.executable) -> str:
    return (
        "#!/bin/sh\n"
        "# gentoo-system-update.sh: unattended Gentoo update (installed by gentoo-update-scheduler)\n"
        "umask 022\n"
        "PATH=/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin\n"
        "export PATH\n"
        f'exec {python} -m gentoo_setup.updater "$@"\n'
    )


def write_update_script(path: str = PATHS.update_script, *, dry_run: bool = False) -> None:
    logger.info("Creating or updating %s ...", path)
    write_file("/", path, render_update_script(), dry_run=dry_run, mode=0o755)
    if not dry_run:
        try:
            os.chown(path, 0, 0)
        except OSError as e:
            logger.warning("Could not chown %s: %s", path, e)
    logger.info("Update script installed at %s", path)


def merge_crontab(existing: str, schedule: Optional[str], script: str) -> str:
    """Drop every line naming script, then append ``schedule script`` (unless removing)."""

    kept = [ln for ln in existing.splitlines() if script not in ln]
    if schedule is not None:
        job = f"{schedule} {script}"
        if job not in kept:
            kept.append(job)
    return "".join(ln + "\n" for ln in kept)


def read_crontab(*, dry_run: bool = False) -> str:
    r = run_cmd(["crontab", "-l"], check=False, dry_run=dry_run)
    # crontab -l exits 1 when root has no crontab yet.
    return r.stdout if r.returncode == 0 else ""


def install_crontab(text: str, *, dry_run: bool = False) -> None:
    run_cmd(["crontab", "-"], input_text=text, dry_run=dry_run)


def ask_frequency(prompter: Prompter) -> str:
    logger.info("Choose update frequency:")
    for key, (label, _) in FREQUENCIES.items():
        logger.info("  %s) %s", key, label)
    return prompter.text("Enter choice [1-4]")


def run(
    *,
    choice: Optional[str] = None,
    remove: bool = False,
    script: str = PATHS.update_script,
    dry_run: bool = False,
    prompter: Optional[Prompter] = None,
) -> str:
    """Install (or with remove, drop) the update job. Returns the new crontab text."""

    if remove:
        crontab = merge_crontab(read_crontab(dry_run=dry_run), None, script)
        install_crontab(crontab, dry_run=dry_run)
        logger.info("Removed scheduled updates for %s", script)
        return crontab

    logger.info("This will schedule unattended full system updates at 02:00 on the 28th.")
    if choice is None:
        choice = ask_frequency(prompter or Prompter())
    schedule = schedule_for(choice)

    write_update_script(script, dry_run=dry_run)

    logger.info("Adding cron job to root's crontab: %s %s", schedule, script)
    crontab = merge_crontab(read_crontab(dry_run=dry_run), schedule, script)
    install_crontab(crontab, dry_run=dry_run)

    logger.info("Setup complete!")
    logger.info("  - Update script: %s", script)
    logger.info("  - Log file:      %s", PATHS.update_log)
    logger.info("  - Cron entry:    %s %s", schedule, script)
    return crontab


def main(argv: Optional[list[str]] = None) -> int:
    raw = list(sys.argv[1:] if argv is None else argv)
    p = argparse.ArgumentParser(prog="gentoo-update-scheduler", description="Schedule unattended Gentoo updates")
    p.add_argument("--frequency", choices=sorted(FREQUENCIES), default=None, help="1=monthly 2=quarterly 3=6-monthly 4=yearly")
    p.add_argument("--remove", action="store_true", help="Remove the scheduled update job")
    p.add_argument("--log", default=PATHS.update_log)
    p.add_argument("--dry-run", action="store_true")
    args = p.parse_args(raw)

    if not args.dry_run:
        ensure_root(raw)
    configure_logging(log_path=args.log)

    try:
        run(choice=args.frequency, remove=bool(args.remove), dry_run=bool(args.dry_run))
    except ValueError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
