from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.portage import emerge
from ..lib.services import enable_service
from .common import is_dry_run, require_target_root

logger = logging.getLogger(__name__)

ESSENTIAL_PACKAGES = ["app-admin/sysklogd", "sys-process/cronie", "app-portage/gentoolkit"]


class InstallServicesStep:
    step_id = "80_install_services"
    title = "Installing essential services"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        target_root = require_target_root(state)
        dry_run = is_dry_run(state)
        init_system = str(cfg.get("init_system", "openrc"))

        emerge(ESSENTIAL_PACKAGES, target_root=target_root, dry_run=dry_run)

        if init_system == "systemd":
            if not enable_service("cronie", "systemd", target_root=target_root, check=False, dry_run=dry_run):
                logger.warning("Could not enable cronie")
        else:
            enable_service("sysklogd", "openrc", target_root=target_root, dry_run=dry_run)
            enable_service("cronie", "openrc", target_root=target_root, dry_run=dry_run)
        return state
