from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.portage import select_profile, sync_repository
from ..state_store import record_decision
from .common import is_dry_run, require_target_root

logger = logging.getLogger(__name__)


class SyncPortageStep:
    step_id = "50_sync_portage"
    title = "Syncing Gentoo repository and selecting profile"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        target_root = require_target_root(state)
        dry_run = is_dry_run(state)

        sync_repository(target_root=target_root, dry_run=dry_run)
        profile = select_profile(
            target_root=target_root,
            init_system=str(cfg.get("init_system", "openrc")),
            flavor=str(cfg.get("stage3_flavor", "minimal")),
            dry_run=dry_run,
        )
        record_decision(state, "profile_number", profile)
        return state
