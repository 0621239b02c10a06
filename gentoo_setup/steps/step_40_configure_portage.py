from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from ..lib.portage import append_make_conf, render_make_conf_block
from ..state_store import record_decision
from .common import is_dry_run, require_target_root

logger = logging.getLogger(__name__)


class ConfigurePortageStep:
    step_id = "40_configure_portage"
    title = "Configuring make.conf"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        target_root = require_target_root(state)

        march = str(cfg.get("march") or "x86-64")
        jobs = int(cfg.get("makeopts_jobs") or 1)
        block = render_make_conf_block(march, jobs, str(cfg.get("accept_keywords", "~amd64")))

        append_make_conf(str(Path(target_root) / "etc/portage/make.conf"), block, dry_run=is_dry_run(state))

        record_decision(state, "march", march)
        logger.info("make.conf configured with -march=%s -j%s", march, jobs)
        return state
