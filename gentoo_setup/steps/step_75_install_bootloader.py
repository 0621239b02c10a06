from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.block import get_uuid
from ..lib.bootloader import install_grub, install_systemd_boot
from ..state_store import record_decision
from .common import is_dry_run, require_target_root

logger = logging.getLogger(__name__)


class InstallBootloaderStep:
    step_id = "75_install_bootloader"
    title = "Installing bootloader"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        target_root = require_target_root(state)
        dry_run = is_dry_run(state)

        boot_mode = cfg.get("boot_mode")
        bootloader = cfg.get("bootloader", "grub2")
        if boot_mode == "BIOS" and bootloader != "grub2":
            raise RuntimeError("BIOS installs require grub2")

        if bootloader == "grub2":
            install_grub(target_root=target_root, boot_mode=boot_mode, disk=str(cfg.get("disk", "")), dry_run=dry_run)
        elif bootloader == "systemd-boot":
            decisions = (state.get("execution") or {}).get("decisions") or {}
            root_uuid = decisions.get("root_uuid")
            if not root_uuid:
                mounts = (state.get("execution") or {}).get("mounts") or {}
                root_uuid = get_uuid(mounts["root_part"], dry_run=dry_run)
            install_systemd_boot(target_root=target_root, root_uuid=root_uuid, dry_run=dry_run)
        else:
            raise RuntimeError(f"Unsupported bootloader: {bootloader}")

        record_decision(state, "bootloader", bootloader)
        return state
