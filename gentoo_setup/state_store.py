from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable

logger = logging.getLogger(__name__)

SECRETS_KEY = "secrets"
SECRET_ANSWERS = ("root_password", "user_password")


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def _yaml():
    try:
        import yaml  # type: ignore
    except ImportError as e:  # pragma: no cover
        raise RuntimeError("YAML requested but PyYAML is not available. Install PyYAML or use JSON.") from e
    return yaml


def load_document(path: str) -> Dict[str, Any]:
    """Load a JSON or YAML mapping; a missing file is an empty mapping."""

    p = Path(path)
    if not p.exists():
        return {}

    text = p.read_text(encoding="utf-8")
    if _detect_format(p) in {"yaml", "yml"}:
        data = _yaml().safe_load(text) or {}
    else:
        data = json.loads(text) if text.strip() else {}

    if not isinstance(data, dict):
        raise ValueError(f"{p} must contain an object/mapping, got {type(data).__name__}")
    return data


def load_state(path: str) -> Dict[str, Any]:
    return load_document(path)


def save_state(path: str, state: Dict[str, Any]) -> None:
    """Persist state. Secrets are never written."""

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    public = {k: v for k, v in state.items() if k != SECRETS_KEY}
    if _detect_format(p) in {"yaml", "yml"}:
        p.write_text(_yaml().safe_dump(public, sort_keys=False), encoding="utf-8")
    else:
        p.write_text(json.dumps(public, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    p.chmod(0o600)


def ensure_defaults(state: Dict[str, Any], *, tool: str) -> Dict[str, Any]:
    """Fill required keys with sane defaults (without overriding user values)."""

    state.setdefault("version", 1)
    state.setdefault("tool", tool)
    state.setdefault("config", {})
    state.setdefault("hardware", {})
    state.setdefault("execution", {})
    state.setdefault(SECRETS_KEY, {})

    exe = state["execution"]
    exe.setdefault("current_step", None)
    exe.setdefault("completed_steps", [])
    exe.setdefault("errors", [])
    exe.setdefault("decisions", {})

    return state


def merge_answers(state: Dict[str, Any], answers: Dict[str, Any], *, secret_keys: Iterable[str] = SECRET_ANSWERS) -> None:
    """Merge a scripted answers mapping into state.config; passwords go to state.secrets."""

    cfg = state.setdefault("config", {})
    secrets = state.setdefault(SECRETS_KEY, {})
    for key, value in answers.items():
        if key in secret_keys:
            secrets[key] = str(value)
        else:
            cfg[key] = value
    logger.info("Loaded %d scripted answers", len(answers))


def mark_step_completed(state: Dict[str, Any], step_id: str) -> None:
    exe = state.setdefault("execution", {})
    completed = exe.setdefault("completed_steps", [])
    if step_id not in completed:
        completed.append(step_id)


def is_step_completed(state: Dict[str, Any], step_id: str) -> bool:
    exe = state.get("execution") or {}
    completed = exe.get("completed_steps") or []
    return step_id in completed


def record_decision(state: Dict[str, Any], key: str, value: Any) -> None:
    state.setdefault("execution", {}).setdefault("decisions", {})[key] = value
