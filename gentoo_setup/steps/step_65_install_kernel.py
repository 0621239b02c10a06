from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.chroot import chroot_cmd
from ..lib.portage import emerge
from ..state_store import record_decision
from .common import is_dry_run, require_target_root

logger = logging.getLogger(__name__)


KERNEL_PACKAGES = {
    "bin": ["sys-kernel/gentoo-kernel-bin", "sys-kernel/linux-firmware"],
    "genkernel": ["sys-kernel/gentoo-sources", "sys-kernel/genkernel", "sys-kernel/linux-firmware"],
    "manual": [
        "sys-kernel/gentoo-sources",
        "sys-kernel/linux-firmware",
        "sys-devel/bc",
        "sys-devel/bison",
        "sys-devel/flex",
        "virtual/libelf",
        "dev-libs/openssl",
    ],
}


class InstallKernelStep:
    step_id = "65_install_kernel"
    title = "Installing kernel"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        target_root = require_target_root(state)
        dry_run = is_dry_run(state)

        method = str(cfg.get("kernel_method", "genkernel"))
        packages = KERNEL_PACKAGES.get(method)
        if packages is None:
            raise RuntimeError(f"Unsupported kernel method: {method}")

        logger.info("Installing kernel (%s method)", method)
        emerge(packages, target_root=target_root, dry_run=dry_run)

        if method == "genkernel":
            chroot_cmd(target_root, ["eselect", "kernel", "set", "1"], dry_run=dry_run)
            chroot_cmd(target_root, ["genkernel", "--install", "all"], stream=True, dry_run=dry_run)
        elif method == "manual":
            jobs = str(cfg.get("makeopts_jobs") or 1)
            script = (
                "cd /usr/src/linux && make defconfig && make olddefconfig && "
                f"(make -j{jobs} || make) && make modules_install && make install"
            )
            chroot_cmd(target_root, ["bash", "-c", script], stream=True, dry_run=dry_run)

        record_decision(state, "kernel_packages", packages)
        return state
