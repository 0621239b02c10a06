from __future__ import annotations

import logging
import os
import stat

from .command import run_cmd

logger = logging.getLogger(__name__)


def is_block_device(path: str) -> bool:
    try:
        return stat.S_ISBLK(os.stat(path).st_mode)
    except OSError:
        return False


def get_uuid(dev: str, *, dry_run: bool = False) -> str:
    """Return filesystem UUID for a block device."""

    r = run_cmd(["blkid", "-s", "UUID", "-o", "value", dev], dry_run=dry_run)
    uuid = (r.stdout or "").strip()
    if dry_run and not uuid:
        return f"DRY-RUN-{os.path.basename(dev)}"
    if not uuid:
        raise RuntimeError(f"Unable to determine UUID for {dev}")
    return uuid
