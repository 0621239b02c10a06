from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from ..lib.env import PATHS

logger = logging.getLogger(__name__)


def is_dry_run(state: Dict[str, Any]) -> bool:
    return bool((state.get("config") or {}).get("dry_run", False))


def require_target_root(state: Dict[str, Any]) -> str:
    mounts = (state.get("execution") or {}).get("mounts") or {}
    target_root = mounts.get("target_root")
    if not target_root:
        raise RuntimeError("execution.mounts.target_root missing; run partition step first")
    return target_root


def default_target_root(state: Dict[str, Any]) -> str:
    mounts = (state.get("execution") or {}).get("mounts") or {}
    return mounts.get("target_root") or (state.get("config") or {}).get("target_root") or PATHS.target_root


def write_file(root: str, rel: str, contents: str, *, dry_run: bool, mode: int | None = None) -> None:
    p = Path(root) / rel.lstrip("/")
    if dry_run:
        logger.info("Would write %s", str(p))
        return
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(contents, encoding="utf-8")
    if mode is not None:
        p.chmod(mode)
