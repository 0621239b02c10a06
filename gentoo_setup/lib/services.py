from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from .chroot import in_root
from .command import have_cmd, run_cmd

logger = logging.getLogger(__name__)


def detect_init_system() -> Optional[str]:
    if Path("/run/systemd/system").is_dir():
        return "systemd"
    if have_cmd("rc-update"):
        return "openrc"
    return None


def is_enabled_openrc(rc_update_show: str, service: str, runlevel: str = "default") -> bool:
    """Parse `rc-update show` output ("  dbus | default boot")."""

    pattern = re.compile(rf"^\s*{re.escape(service)}\s.*\b{re.escape(runlevel)}\b")
    return any(pattern.match(line) for line in rc_update_show.splitlines())


def enable_service(
    name: str,
    init_system: str,
    *,
    target_root: Optional[str] = None,
    runlevel: str = "default",
    check: bool = True,
    dry_run: bool = False,
) -> bool:
    """Enable a service at boot. Returns False when a best-effort enable (check=False) failed."""

    if init_system == "systemd":
        r = run_cmd(in_root(target_root, ["systemctl", "enable", name]), check=check, dry_run=dry_run)
        return r.returncode == 0

    if init_system != "openrc":
        raise ValueError(f"Unsupported init system: {init_system}")

    if not target_root or target_root == "/":
        shown = run_cmd(["rc-update", "show"], check=False, dry_run=dry_run)
        if is_enabled_openrc(shown.stdout, name, runlevel):
            logger.info("Service %s already enabled in %s runlevel.", name, runlevel)
            return True
        logger.info("Enabling %s to start on boot.", name)

    r = run_cmd(in_root(target_root, ["rc-update", "add", name, runlevel]), check=check, dry_run=dry_run)
    if r.returncode != 0:
        logger.warning("Failed to enable %s.", name)
    return r.returncode == 0


def start_service(name: str, *, dry_run: bool = False) -> None:
    """OpenRC: start name on the running system unless its status is already OK."""

    status = run_cmd(["rc-service", name, "status"], check=False, dry_run=dry_run)
    if status.returncode == 0 and not dry_run:
        logger.info("Service %s status OK.", name)
        return
    logger.info("Starting %s.", name)
    r = run_cmd(["rc-service", name, "start"], check=False, dry_run=dry_run)
    if r.returncode != 0:
        logger.warning("Failed to start %s.", name)
