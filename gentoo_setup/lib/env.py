from __future__ import annotations

import os
from dataclasses import dataclass

from .command import have_cmd


@dataclass(frozen=True)
class Paths:
    target_root: str = "/mnt/gentoo"
    portage_dir: str = "/etc/portage"
    install_state: str = "/var/lib/gentoo-setup/install-state.json"
    desktop_state: str = "/var/lib/gentoo-setup/desktop-state.json"
    update_script: str = "/usr/local/bin/gentoo-system-update.sh"
    update_log: str = "/var/log/gentoo-updates.log"
    desktop_log: str = "/var/log/setup-desktop.log"
    timekpr_log: str = "/var/log/timekpr-next-gentoo-install.log"


PATHS = Paths()


def is_root() -> bool:
    return os.geteuid() == 0


def require_root() -> None:
    if not is_root():
        raise RuntimeError("This script must be run as root")


def need_cmds(*names: str) -> None:
    for name in names:
        if not have_cmd(name):
            raise RuntimeError(f"Required command not found: {name}")
