from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import List, Optional

from .command import run_cmd
from .fstab import root_mount_options

logger = logging.getLogger(__name__)

ESP_END_MIB = 513
BIOS_BOOT_END_MIB = 1025

MKFS_ROOT = {
    "ext4": ["mkfs.ext4", "-F", "-L", "root"],
    "btrfs": ["mkfs.btrfs", "-f", "-L", "root"],
    "xfs": ["mkfs.xfs", "-f", "-L", "root"],
}


@dataclass(frozen=True)
class PartitionPlan:
    disk: str
    boot_mode: str  # UEFI|BIOS
    root_fs: str = "ext4"
    swap_gib: int = 0


@dataclass(frozen=True)
class PartitionResult:
    root_part: str
    boot_part: str
    swap_part: Optional[str]


def part_name(disk: str, n: int) -> str:
    # nvme/mmcblk/loop devices use p suffix
    if disk.endswith(tuple("0123456789")):
        return f"{disk}p{n}"
    return f"{disk}{n}"


def partition_commands(plan: PartitionPlan) -> tuple[List[List[str]], PartitionResult]:
    """Return the parted invocations for a simple layout and the partitions they create.

    Layout:
    - UEFI: GPT, 512 MiB ESP (FAT32), optional swap, root fills the rest
    - BIOS: MBR, 1 GiB /boot (ext4, boot flag), optional swap, root fills the rest
    """

    disk = plan.disk
    parted = ["parted", "-s", disk]
    cmds: List[List[str]] = []

    if plan.boot_mode == "UEFI":
        boot_end = ESP_END_MIB
        cmds.append([*parted, "mklabel", "gpt"])
        cmds.append([*parted, "mkpart", "ESP", "fat32", "1MiB", f"{boot_end}MiB"])
        cmds.append([*parted, "set", "1", "esp", "on"])
    elif plan.boot_mode == "BIOS":
        boot_end = BIOS_BOOT_END_MIB
        cmds.append([*parted, "mklabel", "msdos"])
        cmds.append([*parted, "mkpart", "primary", "ext4", "1MiB", f"{boot_end}MiB"])
        cmds.append([*parted, "set", "1", "boot", "on"])
    else:
        raise ValueError(f"boot_mode must be UEFI or BIOS, got {plan.boot_mode!r}")

    root_start = boot_end
    swap_part = None
    root_num = 2
    if plan.swap_gib > 0:
        swap_end = boot_end + plan.swap_gib * 1024
        cmds.append([*parted, "mkpart", "primary", "linux-swap", f"{boot_end}MiB", f"{swap_end}MiB"])
        swap_part = part_name(disk, 2)
        root_start = swap_end
        root_num = 3

    cmds.append([*parted, "mkpart", "primary", plan.root_fs, f"{root_start}MiB", "100%"])

    result = PartitionResult(
        root_part=part_name(disk, root_num),
        boot_part=part_name(disk, 1),
        swap_part=swap_part,
    )
    return cmds, result


def wipe_and_partition(plan: PartitionPlan, *, dry_run: bool = False) -> PartitionResult:
    disk = plan.disk
    logger.info("Partitioning disk=%s boot_mode=%s swap=%sGiB", disk, plan.boot_mode, plan.swap_gib)

    cmds, result = partition_commands(plan)

    run_cmd(["wipefs", "-a", disk], dry_run=dry_run)
    run_cmd(["dd", "if=/dev/zero", f"of={disk}", "bs=512", "count=1", "conv=notrunc"], check=False, dry_run=dry_run)

    for argv in cmds:
        run_cmd(argv, dry_run=dry_run)

    # Inform kernel
    run_cmd(["partprobe", disk], dry_run=dry_run)
    if not dry_run:
        time.sleep(3)
    settle = run_cmd(["udevadm", "settle"], check=False, dry_run=dry_run)
    if settle.returncode != 0 and not dry_run:
        time.sleep(2)

    logger.info("Partitions created: root=%s boot=%s swap=%s", result.root_part, result.boot_part, result.swap_part)
    return result


def format_and_mount(
    parts: PartitionResult,
    *,
    boot_mode: str,
    root_fs: str,
    target_root: str,
    dry_run: bool = False,
) -> None:
    """Create filesystems, enable swap, mount root at target_root and boot at target_root/boot."""

    if root_fs not in MKFS_ROOT:
        raise ValueError(f"Unsupported root filesystem: {root_fs}")

    if boot_mode == "UEFI":
        run_cmd(["mkfs.vfat", "-F", "32", "-n", "EFI", parts.boot_part], dry_run=dry_run)
    else:
        run_cmd(["mkfs.ext4", "-F", "-L", "boot", parts.boot_part], dry_run=dry_run)

    logger.info("Formatting root partition with %s", root_fs)
    run_cmd([*MKFS_ROOT[root_fs], parts.root_part], dry_run=dry_run)

    if parts.swap_part:
        run_cmd(["mkswap", "-L", "swap", parts.swap_part], dry_run=dry_run)
        run_cmd(["swapon", parts.swap_part], dry_run=dry_run)

    mount_target(parts, root_fs=root_fs, target_root=target_root, dry_run=dry_run)


def mount_target(parts: PartitionResult, *, root_fs: str, target_root: str, dry_run: bool = False) -> None:
    boot_dir = os.path.join(target_root, "boot")

    if dry_run or not os.path.ismount(target_root):
        run_cmd(["mkdir", "-p", target_root], dry_run=dry_run)
        run_cmd(["mount", "-o", root_mount_options(root_fs), parts.root_part, target_root], dry_run=dry_run)

    if dry_run or not os.path.ismount(boot_dir):
        run_cmd(["mkdir", "-p", boot_dir], dry_run=dry_run)
        run_cmd(["mount", parts.boot_part, boot_dir], dry_run=dry_run)

    logger.info("Filesystems mounted at %s", target_root)
