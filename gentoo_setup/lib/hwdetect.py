from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Sequence

from .block import is_block_device
from .command import run_cmd
from .cpu import march_for_cpu, read_cpuinfo
from .firmware import detect_boot_mode

logger = logging.getLogger(__name__)

DISK_CANDIDATES = ("/dev/nvme0n1", "/dev/sda", "/dev/vda")
SWAP_CAP_GIB = 32


def mem_total_gib(meminfo_path: str = "/proc/meminfo") -> int:
    """MemTotal rounded up to whole GiB (0 if unreadable)."""

    try:
        for line in Path(meminfo_path).read_text(encoding="utf-8").splitlines():
            if line.startswith("MemTotal:"):
                kib = int(line.split()[1])
                return (kib + 1048575) // 1048576
    except (OSError, ValueError, IndexError):
        logger.warning("Unable to read memory size from %s", meminfo_path)
    return 0


def auto_swap_gib(mem_gib: int) -> int:
    if mem_gib <= 2:
        swap = mem_gib * 2
    elif mem_gib <= 8:
        swap = (mem_gib * 3) // 2
    elif mem_gib <= 64:
        swap = mem_gib
    else:
        swap = mem_gib // 2
    return min(swap, SWAP_CAP_GIB)


def default_disk(candidates: Sequence[str] = DISK_CANDIDATES) -> str:
    for dev in candidates:
        if is_block_device(dev):
            return dev
    return ""


def list_disks(*, dry_run: bool = False) -> List[str]:
    r = run_cmd(["lsblk", "-e7", "-d", "-o", "NAME,SIZE,TYPE,MODEL"], check=False, dry_run=dry_run)
    return [ln for ln in (r.stdout or "").splitlines() if "loop" not in ln and "rom" not in ln]


def detect_system(*, dry_run: bool = False) -> Dict[str, Any]:
    vendor, model = read_cpuinfo()
    march = march_for_cpu(vendor, model)
    mem_gib = mem_total_gib()

    hw: Dict[str, Any] = {
        "cpu_vendor": vendor,
        "cpu_model": model or "unknown",
        "cpu_march": march,
        "cores": os.cpu_count() or 1,
        "boot_mode": detect_boot_mode(),
        "mem_gib": mem_gib,
        "auto_swap_gib": auto_swap_gib(mem_gib),
        "default_disk": default_disk(),
        "disks": list_disks(dry_run=dry_run),
    }

    logger.info("Detected CPU: %s", hw["cpu_model"])
    logger.info("Optimal -march flag: %s", march)
    logger.info("%s firmware detected", hw["boot_mode"])
    logger.info("CPU cores: %s", hw["cores"])
    logger.info("RAM: %s GiB", mem_gib)
    for line in hw["disks"]:
        logger.info("  %s", line)
    return hw
