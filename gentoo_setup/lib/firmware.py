from __future__ import annotations

from pathlib import Path


def detect_boot_mode(efi_dir: str = "/sys/firmware/efi") -> str:
    """Detect firmware type for the *currently running* environment.

    Returns: 'UEFI' or 'BIOS'.
    """

    if Path(efi_dir).is_dir():
        return "UEFI"
    return "BIOS"
