from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from .chroot import chroot_cmd
from .portage import emerge

logger = logging.getLogger(__name__)

LOADER_CONF = "default gentoo.conf\ntimeout 3\nconsole-mode max\neditor no\n"


def install_grub(
    *,
    target_root: str,
    boot_mode: str,
    disk: str,
    dry_run: bool = False,
) -> None:
    """Install GRUB2 for UEFI (ESP mounted at /boot) or BIOS (MBR of disk)."""

    if boot_mode == "UEFI":
        emerge(["sys-boot/grub:2", "sys-boot/efibootmgr"], target_root=target_root, dry_run=dry_run)
        chroot_cmd(
            target_root,
            [
                "grub-install",
                "--target=x86_64-efi",
                "--efi-directory=/boot",
                "--bootloader-id=Gentoo",
                "--recheck",
            ],
            dry_run=dry_run,
        )
    else:
        emerge(["sys-boot/grub:2"], target_root=target_root, dry_run=dry_run)
        chroot_cmd(target_root, ["grub-install", "--target=i386-pc", disk], dry_run=dry_run)
    chroot_cmd(target_root, ["grub-mkconfig", "-o", "/boot/grub/grub.cfg"], dry_run=dry_run)
    logger.info("GRUB2 installed (%s)", boot_mode)


def render_loader_entry(*, kernel_version: str, initrd: Optional[str], root_uuid: str) -> str:
    lines = ["title   Gentoo Linux", f"linux   /vmlinuz-{kernel_version}"]
    if initrd:
        lines.append(f"initrd  /{initrd}")
    lines.append(f"options root=UUID={root_uuid} rw")
    return "\n".join(lines) + "\n"


def find_kernel(boot_dir: Path) -> tuple[str, Optional[str]]:
    """Return (kernel version, initramfs file name) of the newest kernel in boot_dir.

    Leftover ``.old`` images are ignored. The initramfs must match the chosen
    version; None when that kernel has no initramfs.
    """

    kernels = sorted(
        (p for p in boot_dir.glob("vmlinuz-*") if not p.name.endswith(".old")),
        key=lambda p: [int(x) if x.isdigit() else x for x in re.split(r"(\d+)", p.name)],
    )
    if not kernels:
        return "", None
    version = kernels[-1].name[len("vmlinuz-"):]
    initrd = f"initramfs-{version}.img"
    return version, (initrd if (boot_dir / initrd).is_file() else None)


def install_systemd_boot(*, target_root: str, root_uuid: str, dry_run: bool = False) -> None:
    chroot_cmd(target_root, ["bootctl", "--esp-path=/boot", "install"], dry_run=dry_run)

    boot = Path(target_root) / "boot"
    version, initrd = find_kernel(boot)
    if not version:
        logger.warning("No kernel found in %s; boot entry will need editing", boot)

    entry = render_loader_entry(kernel_version=version, initrd=initrd, root_uuid=root_uuid)
    if dry_run:
        logger.info("Would write %s and %s", boot / "loader/loader.conf", boot / "loader/entries/gentoo.conf")
        return

    (boot / "loader/entries").mkdir(parents=True, exist_ok=True)
    (boot / "loader/loader.conf").write_text(LOADER_CONF, encoding="utf-8")
    (boot / "loader/entries/gentoo.conf").write_text(entry, encoding="utf-8")
    logger.info("systemd-boot installed (kernel=%s initrd=%s)", version, initrd)
