from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.block import get_uuid
from ..lib.fstab import install_entries, render_fstab
from ..state_store import record_decision
from .common import is_dry_run, require_target_root, write_file

logger = logging.getLogger(__name__)


class WriteFstabStep:
    step_id = "70_write_fstab"
    title = "Generating /etc/fstab"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        mounts = (state.get("execution") or {}).get("mounts") or {}
        target_root = require_target_root(state)
        root_part = mounts.get("root_part")
        boot_part = mounts.get("boot_part")
        swap_part = mounts.get("swap_part")

        if not root_part or not boot_part:
            raise RuntimeError("Missing root_part/boot_part; run partition step first")

        dry_run = is_dry_run(state)

        root_uuid = get_uuid(root_part, dry_run=dry_run)
        boot_uuid = get_uuid(boot_part, dry_run=dry_run)
        swap_uuid = get_uuid(swap_part, dry_run=dry_run) if swap_part else None

        contents = render_fstab(
            install_entries(
                root_uuid=root_uuid,
                root_fs=str(cfg.get("root_fs", "ext4")),
                boot_uuid=boot_uuid,
                boot_mode=str(cfg.get("boot_mode", "UEFI")),
                swap_uuid=swap_uuid,
            )
        )
        write_file(target_root, "/etc/fstab", contents, dry_run=dry_run)

        record_decision(state, "root_uuid", root_uuid)
        logger.info("/etc/fstab created:\n%s", contents.rstrip())
        return state
