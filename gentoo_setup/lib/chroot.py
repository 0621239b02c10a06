from __future__ import annotations

import logging
import os
import shlex
from typing import List, Optional, Sequence

from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)


def in_root(target_root: Optional[str], argv: Sequence[str]) -> List[str]:
    """Wrap argv so it runs inside target_root.

    A login shell is used so /etc/profile (PATH, env-update results) is sourced
    for every command. None or "/" means the running system.
    """

    if not target_root or target_root == "/":
        return list(argv)
    return ["chroot", target_root, "/bin/bash", "-lc", shlex.join(argv)]


def chroot_cmd(target_root: str, argv: Sequence[str], **kwargs) -> CmdResult:
    """Run a command inside target root."""

    return run_cmd(in_root(target_root, argv), **kwargs)


def mount_pseudo_filesystems(target_root: str, *, dry_run: bool = False) -> None:
    """proc, sys, dev and run for a Gentoo chroot (sys/dev/run as recursive slaves)."""

    def mounted(rel: str) -> bool:
        return not dry_run and os.path.ismount(os.path.join(target_root, rel))

    if not mounted("proc"):
        run_cmd(["mount", "--types", "proc", "/proc", f"{target_root}/proc"], dry_run=dry_run)
    for name in ("sys", "dev"):
        if not mounted(name):
            run_cmd(["mount", "--rbind", f"/{name}", f"{target_root}/{name}"], dry_run=dry_run)
            run_cmd(["mount", "--make-rslave", f"{target_root}/{name}"], dry_run=dry_run)
    if not mounted("run"):
        r = run_cmd(["mount", "--rbind", "/run", f"{target_root}/run"], check=False, dry_run=dry_run)
        if r.returncode != 0:
            run_cmd(["mount", "--bind", "/run", f"{target_root}/run"], dry_run=dry_run)
        run_cmd(["mount", "--make-rslave", f"{target_root}/run"], check=False, dry_run=dry_run)


def umount_target(target_root: str, *, dry_run: bool = False) -> None:
    """Best-effort teardown: unmount everything below target_root and disable swap."""

    if dry_run or os.path.ismount(target_root):
        logger.info("Unmounting filesystems...")
        r = run_cmd(["umount", "-R", target_root], check=False, dry_run=dry_run)
        if r.returncode != 0:
            logger.warning("umount -R %s failed: %s", target_root, r.stderr.strip())
    run_cmd(["swapoff", "-a"], check=False, dry_run=dry_run)
