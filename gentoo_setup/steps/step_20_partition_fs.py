from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.storage import PartitionPlan, PartitionResult, format_and_mount, wipe_and_partition
from .common import default_target_root, is_dry_run

logger = logging.getLogger(__name__)


class PartitionFilesystemStep:
    step_id = "20_partition_fs"
    title = "Partitioning, formatting and mounting"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.setdefault("config", {})
        exe = state.setdefault("execution", {})

        disk = cfg.get("disk")
        if not disk:
            raise RuntimeError("config.disk is required for partitioning")

        boot_mode = cfg.get("boot_mode")
        if boot_mode not in {"UEFI", "BIOS"}:
            raise RuntimeError(f"config.boot_mode must be 'UEFI' or 'BIOS', got: {boot_mode}")

        dry_run = is_dry_run(state)
        root_fs = cfg.get("root_fs", "ext4")
        target_root = default_target_root(state)

        if cfg.get("layout") == "custom":
            logger.info("Custom layout: using existing partitions on %s", disk)
            result = PartitionResult(
                root_part=cfg["root_part"],
                boot_part=cfg["boot_part"],
                swap_part=cfg.get("swap_part") or None,
            )
        else:
            plan = PartitionPlan(
                disk=disk,
                boot_mode=boot_mode,
                root_fs=root_fs,
                swap_gib=int(cfg.get("swap_gib") or 0),
            )
            result = wipe_and_partition(plan, dry_run=dry_run)

        format_and_mount(result, boot_mode=boot_mode, root_fs=root_fs, target_root=target_root, dry_run=dry_run)

        mounts = exe.setdefault("mounts", {})
        mounts["target_root"] = target_root
        mounts["root_part"] = result.root_part
        mounts["boot_part"] = result.boot_part
        mounts["swap_part"] = result.swap_part

        logger.info("Partitioned and mounted target_root=%s", target_root)
        return state
