from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .desktop_config import DesktopConfig, collect_desktop_config, summarize_desktop_config, user_exists
from .desktop_steps import ALL_STEPS, DesktopCtx
from .lib.command import have_cmd
from .lib.env import PATHS, require_root
from .logging_utils import configure_logging
from .prompts import Prompter
from .state_store import ensure_defaults, load_document, load_state, merge_answers, save_state

logger = logging.getLogger(__name__)

TOOL = "gentoo-setup-desktop"

XINITRC_HINTS = [
    "echo exec startplasma-x11 > ~/.xinitrc      (KDE on X11)",
    "echo exec gnome-session > ~/.xinitrc        (Gnome on X11)",
    "echo exec mate-session > ~/.xinitrc         (MATE on X11)",
    "echo exec startlxde > ~/.xinitrc            (LXDE on X11)",
]


def require_openrc(root: str = "/") -> None:
    if root in ("", "/"):
        found = have_cmd("rc-update")
    else:
        found = any((Path(root) / d / "rc-update").exists() for d in ("sbin", "usr/sbin", "bin", "usr/bin"))
    if not found:
        raise RuntimeError("OpenRC not detected (rc-update not found). This tool targets OpenRC.")


def log_notes(dc: DesktopConfig, log_path: str) -> None:
    logger.info("Notes:")
    logger.info("  - If you chose 'None' as display manager and installed Xorg/Xlibre, you can use 'startx'.")
    logger.info("  - For startx, ensure ~/.xinitrc runs your session, e.g.:")
    for hint in XINITRC_HINTS:
        logger.info("        %s", hint)
    logger.info("  - On OpenRC, services can be managed with rc-update and rc-service.")
    logger.info("  - Ensure VIDEO_CARDS and INPUT_DEVICES are set in /etc/portage/make.conf, then update drivers if needed.")
    if dc.xlibre:
        logger.info("  - XLibre selected: Wayland has been disabled globally, X11 and OpenGL enabled for all packages.")
        logger.info("  - Qt and KDE will use X11 (XLibre) as the display backend.")
    logger.info("Log saved to: %s", log_path)


def run(
    *,
    state_path: str = PATHS.desktop_state,
    log_path: str = PATHS.desktop_log,
    answers_path: Optional[str] = None,
    assume_yes: bool = False,
    dry_run: bool = False,
    force: bool = False,
    root: str = "/",
    prompter: Optional[Prompter] = None,
) -> Dict[str, Any]:
    """Run the wizard, then every desktop step unattended. Returns the final state."""

    actual_log = configure_logging(log_path=log_path)
    if not dry_run:
        require_root()
        require_openrc(root)

    state = ensure_defaults(load_state(state_path), tool=TOOL)
    exe = state["execution"]
    interrupted = exe.get("current_step")
    previous = state["config"]

    # Every run asks the wizard again; only --answers pre-fills it.
    state["config"] = {}
    if answers_path:
        merge_answers(state, load_document(answers_path))

    prompter = prompter or Prompter(assume_yes=assume_yes)
    logger.info("Gentoo Desktop Setup (OpenRC). Log: %s", actual_log)
    logger.info("=== CONFIGURATION WIZARD ===")
    logger.info("Please answer all questions upfront. The installation will then run unattended.")

    dc = collect_desktop_config(state["config"], state["secrets"], prompter, exists=lambda name: user_exists(name, root))

    logger.info("=== CONFIGURATION SUMMARY ===")
    for line in summarize_desktop_config(dc):
        logger.info("  %s", line)
    if not prompter.yes_no("Proceed with installation?", True):
        logger.info("Installation cancelled by user.")
        return state

    if interrupted and state["config"] == previous:
        logger.info("Resuming interrupted run at %s", interrupted)
    else:
        exe["completed_steps"] = []

    logger.info("=== STARTING INSTALLATION ===")
    logger.info("This may take a long time. Progress is logged to: %s", actual_log)

    ctx = DesktopCtx(cfg=dc, secrets=state["secrets"], dry_run=dry_run, root=root)
    try:
        for fn in ALL_STEPS:
            state["execution"]["current_step"] = fn.__name__
            fn(ctx=ctx, state=state, force=force)
            save_state(state_path, state)
        state["execution"]["current_step"] = None
    except Exception as e:
        logger.exception("Desktop setup failed")
        state["execution"]["errors"].append({"step": state["execution"].get("current_step"), "error": str(e)})
        raise
    finally:
        save_state(state_path, state)

    logger.info("Setup complete.")
    logger.info("Summary:")
    for line in summarize_desktop_config(dc):
        logger.info("  %s", line)
    log_notes(dc, actual_log)
    return state


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog=TOOL, description="Configure a Gentoo (OpenRC) desktop")
    p.add_argument("--state", default=PATHS.desktop_state)
    p.add_argument("--log", default=PATHS.desktop_log)
    p.add_argument("--answers", default=None, help="YAML/JSON file of pre-filled answers")
    p.add_argument("--yes", action="store_true", help="Accept the default for every question that has one")
    p.add_argument("--dry-run", action="store_true")
    p.add_argument("--root", default="/", help="Configure the system mounted here (via chroot) instead of the running one")
    p.add_argument("--force", action="store_true", help="Re-run steps even if marked completed")
    args = p.parse_args(argv)

    run(
        state_path=args.state,
        log_path=args.log,
        answers_path=args.answers,
        assume_yes=bool(args.yes),
        dry_run=bool(args.dry_run),
        force=bool(args.force),
        root=args.root,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
