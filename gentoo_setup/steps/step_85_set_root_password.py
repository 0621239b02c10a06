from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.chroot import chroot_cmd
from .common import is_dry_run, require_target_root

logger = logging.getLogger(__name__)


class SetRootPasswordStep:
    step_id = "85_set_root_password"
    title = "Setting root password"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        target_root = require_target_root(state)
        password = (state.get("secrets") or {}).get("root_password")
        if not password:
            raise RuntimeError("Root password missing; it is never stored, so re-run with the password prompt")

        # Fed over stdin so it never appears in argv or the log.
        chroot_cmd(target_root, ["chpasswd"], input_text=f"root:{password}\n", dry_run=is_dry_run(state))
        return state
