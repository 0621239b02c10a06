from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, Optional

from .install_config import DEFAULTS, collect_install_config, confirm_install
from .lib.chroot import mount_pseudo_filesystems, umount_target
from .lib.env import PATHS, need_cmds, require_root
from .lib.hwdetect import detect_system
from .lib.storage import PartitionResult, mount_target
from .lib.sysconfig import render_resolv_conf
from .logging_utils import configure_logging, timestamped_log_path
from .pipeline import run_pipeline
from .prompts import Aborted, Prompter
from .state_store import ensure_defaults, is_step_completed, load_document, load_state, merge_answers, save_state
from .steps import (
    ConfigurePortageStep,
    ConfigureSystemStep,
    FinalizeStep,
    InstallBootloaderStep,
    InstallKernelStep,
    InstallServicesStep,
    InstallStage3Step,
    PartitionFilesystemStep,
    PrepareChrootStep,
    SetRootPasswordStep,
    SyncPortageStep,
    UpdateWorldStep,
    WriteFstabStep,
)
from .steps.common import default_target_root, write_file

logger = logging.getLogger(__name__)


TOOL = "gentoo-install"
REQUIRED_CMDS = ("parted", "mkfs.ext4", "mkfs.vfat", "mkswap", "curl", "tar", "lsblk", "blkid")


def build_steps():
    return [
        PartitionFilesystemStep(),
        InstallStage3Step(),
        ConfigurePortageStep(),
        PrepareChrootStep(),
        SyncPortageStep(),
        ConfigureSystemStep(),
        UpdateWorldStep(),
        InstallKernelStep(),
        WriteFstabStep(),
        InstallBootloaderStep(),
        InstallServicesStep(),
        SetRootPasswordStep(),
        FinalizeStep(),
    ]


def prepare_host(cfg: Dict[str, Any], *, dry_run: bool) -> None:
    """Preflight on the live system: root, tools, and working DNS."""

    if dry_run:
        logger.info("Dry run: skipping root and tool checks")
    else:
        require_root()
        need_cmds(*REQUIRED_CMDS)

    servers = cfg.get("dns_servers") or DEFAULTS["dns_servers"]
    logger.info("Configuring DNS: %s", ", ".join(servers))
    write_file("/", "/etc/resolv.conf", render_resolv_conf(servers), dry_run=dry_run)


def restore_mounts(state: Dict[str, Any], *, dry_run: bool) -> None:
    """Re-mount the target when resuming after the partition step already ran."""

    if not is_step_completed(state, "20_partition_fs"):
        return
    cfg = state.get("config") or {}
    mounts = (state.get("execution") or {}).get("mounts") or {}
    target_root = default_target_root(state)
    parts = PartitionResult(
        root_part=mounts["root_part"],
        boot_part=mounts["boot_part"],
        swap_part=mounts.get("swap_part"),
    )
    logger.info("Resuming: re-mounting %s", target_root)
    mount_target(parts, root_fs=str(cfg.get("root_fs", "ext4")), target_root=target_root, dry_run=dry_run)
    if is_step_completed(state, "45_prepare_chroot"):
        mount_pseudo_filesystems(target_root, dry_run=dry_run)


def reruns_partitioning(steps, *, start_at: Optional[str], force: bool) -> bool:
    """True when this run will partition and format the disk again."""

    if not force:
        return False
    ids = [s.step_id for s in steps]
    first = ids.index(PartitionFilesystemStep.step_id)
    return start_at is None or (start_at in ids and ids.index(start_at) <= first)


def run(
    *,
    state_path: str = PATHS.install_state,
    log_path: Optional[str] = None,
    answers_path: Optional[str] = None,
    assume_yes: bool = False,
    dry_run: bool = False,
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
    keep_mounted: bool = False,
    prompter: Optional[Prompter] = None,
) -> Dict[str, Any]:
    """Run the installer pipeline, persisting state for resume."""

    log_path = log_path or timestamped_log_path(TOOL)
    actual_log_path = configure_logging(log_path=log_path)

    state = ensure_defaults(load_state(state_path), tool=TOOL)
    paths = state["execution"].setdefault("paths", {})
    paths["log_path_requested"] = log_path
    paths["log_path_actual"] = actual_log_path

    if answers_path:
        merge_answers(state, load_document(answers_path))
    cfg = state["config"]
    if dry_run:
        cfg["dry_run"] = True
    dry_run = bool(cfg.get("dry_run", False))

    prompter = prompter or Prompter(assume_yes=assume_yes)
    touched_disk = False

    try:
        prepare_host(cfg, dry_run=dry_run)

        logger.info("Detecting system configuration...")
        state["hardware"] = detect_system(dry_run=dry_run)

        collect_install_config(state, prompter)
        confirm_install(cfg, prompter)
        save_state(state_path, state)

        steps = build_steps()
        touched_disk = True
        if reruns_partitioning(steps, start_at=start_at, force=force):
            if is_step_completed(state, PartitionFilesystemStep.step_id):
                logger.info("Re-partitioning: releasing %s first", default_target_root(state))
                umount_target(default_target_root(state), dry_run=dry_run)
        else:
            restore_mounts(state, dry_run=dry_run)

        result = run_pipeline(
            state=state,
            steps=steps,
            start_at=start_at,
            stop_after=stop_after,
            force=force,
            checkpoint=lambda s: save_state(state_path, s),
        )
        state = result.state
        summary = state["execution"].setdefault("summary", {})
        summary["ran_steps"] = result.ran_steps
        summary["skipped_steps"] = result.skipped_steps
        return state
    except Aborted:
        raise
    except Exception as e:
        logger.exception("Installer failed")
        state.setdefault("execution", {}).setdefault("errors", []).append(
            {
                "step": (state.get("execution") or {}).get("current_step"),
                "error": str(e),
            }
        )
        raise
    finally:
        save_state(state_path, state)
        if touched_disk and not keep_mounted:
            umount_target(default_target_root(state), dry_run=dry_run)


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog=TOOL, description="Install Gentoo Linux onto a disk")
    p.add_argument("--state", default=PATHS.install_state, help="Path to installer state (json|yaml)")
    p.add_argument("--log", default=None, help="Path to installer log (default: timestamped under /var/log)")
    p.add_argument("--answers", default=None, help="YAML/JSON file of pre-filled answers")
    p.add_argument("--yes", action="store_true", help="Accept the default for every question that has one")
    p.add_argument("--dry-run", action="store_true", help="Log commands without running them")
    p.add_argument("--start-at", default=None, help="Start at step_id (e.g. 65_install_kernel)")
    p.add_argument("--stop-after", default=None, help="Stop after step_id")
    p.add_argument("--force", action="store_true", help="Re-run steps even if marked completed")
    p.add_argument("--keep-mounted", action="store_true", help="Leave the target mounted on exit")

    args = p.parse_args(argv)

    try:
        run(
            state_path=args.state,
            log_path=args.log,
            answers_path=args.answers,
            assume_yes=bool(args.yes),
            dry_run=bool(args.dry_run),
            start_at=args.start_at,
            stop_after=args.stop_after,
            force=bool(args.force),
            keep_mounted=bool(args.keep_mounted),
        )
    except Aborted as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
