from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Dict

from ..lib.chroot import mount_pseudo_filesystems
from .common import is_dry_run, require_target_root

logger = logging.getLogger(__name__)


class PrepareChrootStep:
    step_id = "45_prepare_chroot"
    title = "Preparing chroot environment"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        target_root = require_target_root(state)
        dry_run = is_dry_run(state)

        dest = Path(target_root) / "etc/resolv.conf"
        if dry_run:
            logger.info("Would copy /etc/resolv.conf to %s", dest)
        else:
            dest.parent.mkdir(parents=True, exist_ok=True)
            if dest.is_symlink():
                dest.unlink()
            # copyfile follows the source symlink (cp --dereference).
            shutil.copyfile("/etc/resolv.conf", dest)

        mount_pseudo_filesystems(target_root, dry_run=dry_run)
        return state
