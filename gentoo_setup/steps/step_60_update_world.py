from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.portage import world_update
from .common import is_dry_run, require_target_root

logger = logging.getLogger(__name__)


class UpdateWorldStep:
    step_id = "60_update_world"
    title = "Updating @world (resolves the new profile's USE changes)"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        world_update(target_root=require_target_root(state), dry_run=is_dry_run(state))
        return state
