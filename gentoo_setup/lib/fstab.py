from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

ROOT_MOUNT_OPTIONS = {
    "ext4": "defaults,noatime",
    "btrfs": "noatime,compress=zstd",
    "xfs": "noatime,inode64",
}

HEADER = "# <fs>          <mountpoint>  <type>  <opts>              <dump/pass>"


@dataclass(frozen=True)
class FstabEntry:
    spec: str
    mountpoint: str
    fstype: str
    options: str
    dump: int = 0
    passno: int = 0

    def render(self) -> str:
        return f"{self.spec}  {self.mountpoint:<6} {self.fstype:<8} {self.options}  {self.dump} {self.passno}"


def root_mount_options(fstype: str) -> str:
    try:
        return ROOT_MOUNT_OPTIONS[fstype]
    except KeyError:
        raise ValueError(f"Unsupported root filesystem: {fstype}") from None


def render_fstab(entries: Iterable[FstabEntry]) -> str:
    lines = [HEADER]
    lines.extend(e.render() for e in entries)
    return "\n".join(lines) + "\n"


def install_entries(
    *,
    root_uuid: str,
    root_fs: str,
    boot_uuid: str,
    boot_mode: str,
    swap_uuid: str | None = None,
) -> list[FstabEntry]:
    entries = [
        FstabEntry(f"UUID={root_uuid}", "/", root_fs, root_mount_options(root_fs), 0, 1),
        FstabEntry(
            f"UUID={boot_uuid}",
            "/boot",
            "vfat" if boot_mode == "UEFI" else "ext4",
            "defaults,noatime",
            0,
            2,
        ),
    ]
    if swap_uuid:
        entries.append(FstabEntry(f"UUID={swap_uuid}", "none", "swap", "sw", 0, 0))
    return entries
