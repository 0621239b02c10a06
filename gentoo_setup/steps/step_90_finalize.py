from __future__ import annotations

import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


class FinalizeStep:
    step_id = "90_finalize"
    title = "Installation complete!"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        log_path = ((state.get("execution") or {}).get("paths") or {}).get("log_path_actual", "")

        logger.info("Installation Summary:")
        for label, key in (
            ("Disk", "disk"),
            ("Boot Mode", "boot_mode"),
            ("Filesystem", "root_fs"),
            ("Init System", "init_system"),
            ("Kernel", "kernel_method"),
            ("Bootloader", "bootloader"),
            ("Hostname", "hostname"),
        ):
            logger.info("  %s: %s", label, cfg.get(key))
        logger.info("  CPU Optimization: -march=%s", cfg.get("march"))

        logger.info("Next Steps:")
        logger.info("  1. Review the installation log: %s", log_path)
        logger.info("  2. Reboot your system: reboot")
        logger.info("  3. Remove the installation media")
        logger.info("  4. Log in with root and your configured password")
        return state
