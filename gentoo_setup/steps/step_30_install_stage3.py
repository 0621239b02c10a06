from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.stage3 import DEFAULT_MIRROR, extract_stage3, fetch_stage3, stage3_source
from ..state_store import record_decision
from .common import is_dry_run, require_target_root

logger = logging.getLogger(__name__)


class InstallStage3Step:
    step_id = "30_install_stage3"
    title = "Downloading, verifying and extracting stage3"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        target_root = require_target_root(state)
        dry_run = is_dry_run(state)

        source = stage3_source(
            str(cfg.get("stage3_flavor", "minimal")),
            str(cfg.get("init_system", "openrc")),
            str(cfg.get("mirror") or DEFAULT_MIRROR),
        )
        tarball = fetch_stage3(source, str(cfg.get("download_dir", "/tmp")), dry_run=dry_run)
        extract_stage3(tarball, target_root, dry_run=dry_run)

        record_decision(state, "stage3", tarball)
        return state
