from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence

from .chroot import in_root
from .command import CmdResult, run_cmd
from .env import PATHS

logger = logging.getLogger(__name__)

MAKE_CONF_MARKER = "# CPU-optimized compilation flags"

EMERGE_BASE = ["emerge", "--quiet-build=y", "--ask=n", "--noreplace"]
EMERGE_AUTOUNMASK = ["--autounmask=y", "--autounmask-write", "--autounmask-continue"]

_ELOGIND_CONFLICT = re.compile(r"exactly-one-of.*elogind.*systemd")
_WAYLAND_OPENGL_CONFLICT = "wayland? ( opengl )"

_PROFILE_LINE = re.compile(r"^\s*\[(\d+)\]\s+(\S+)")
_PROFILE_EXCLUDE = ("no-multilib", "hardened", "musl", "x32")


def render_make_conf_block(march: str, jobs: int, accept_keywords: str = "~amd64") -> str:
    return (
        "\n"
        f"{MAKE_CONF_MARKER}\n"
        f'CFLAGS="-march={march} -O2 -pipe"\n'
        'CXXFLAGS="${CFLAGS}"\n'
        f'MAKEOPTS="-j{jobs}"\n'
        "\n"
        "# Additional useful settings\n"
        'ACCEPT_LICENSE="*"\n'
        f'ACCEPT_KEYWORDS="{accept_keywords}"\n'
    )


def append_make_conf(make_conf: str, block: str, *, dry_run: bool = False) -> bool:
    """Append block to make.conf unless it was already appended. Returns True if written."""

    p = Path(make_conf)
    existing = p.read_text(encoding="utf-8") if p.exists() else ""
    if MAKE_CONF_MARKER in existing:
        logger.info("make.conf already configured: %s", p)
        return False
    if dry_run:
        logger.info("Would append to %s", p)
        return True
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("a", encoding="utf-8") as f:
        f.write(block)
    return True


def append_once(path: str, marker: str, lines: Sequence[str]) -> bool:
    """Append marker + lines to path unless marker is already present."""

    p = Path(path)
    if p.exists() and marker in p.read_text(encoding="utf-8"):
        return False
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("a", encoding="utf-8") as f:
        f.write("\n".join([marker, *lines]) + "\n")
    return True


def emerge(
    packages: Sequence[str],
    *,
    options: Sequence[str] = (),
    target_root: Optional[str] = None,
    quiet_fallback: bool = True,
    dry_run: bool = False,
) -> CmdResult:
    """emerge --quiet first; on failure retry once verbosely so the log shows why."""

    argv = ["emerge", *options, *packages]
    if not quiet_fallback:
        return run_cmd(in_root(target_root, argv), stream=True, dry_run=dry_run)

    quiet = run_cmd(
        in_root(target_root, ["emerge", "--quiet", *options, *packages]),
        check=False,
        stream=True,
        dry_run=dry_run,
    )
    if quiet.returncode == 0:
        return quiet
    logger.warning("emerge --quiet failed (%s); retrying verbosely", quiet.returncode)
    return run_cmd(in_root(target_root, argv), stream=True, dry_run=dry_run)


def emerge_available(atom: str, *, target_root: Optional[str] = None, dry_run: bool = False) -> bool:
    if dry_run:
        return True
    r = run_cmd(in_root(target_root, ["emerge", "--pretend", "--quiet", atom]), check=False)
    return r.returncode == 0


def apply_use_fixes(
    output: str,
    *,
    portage_dir: str = PATHS.portage_dir,
    display_server: Optional[str] = None,
) -> List[str]:
    """Inspect a failed emerge's output and write package.use entries for known REQUIRED_USE conflicts."""

    applied: List[str] = []
    use_dir = Path(portage_dir) / "package.use"

    if _ELOGIND_CONFLICT.search(output):
        logger.warning("Detected elogind/systemd REQUIRED_USE conflict. Enabling elogind globally for OpenRC.")
        append_once(
            str(use_dir / "elogind"),
            "# Enable elogind for OpenRC (added by setup script)",
            ["*/* elogind"],
        )
        applied.append("elogind")

    if _WAYLAND_OPENGL_CONFLICT in output and (display_server or "").lower() != "xlibre":
        logger.warning("Detected wayland/opengl REQUIRED_USE conflict. Enabling opengl for packages that use wayland.")
        append_once(
            str(use_dir / "wayland-opengl"),
            "# Wayland requires OpenGL (added by setup script)",
            ["*/*::gentoo wayland opengl"],
        )
        applied.append("wayland-opengl")

    return applied


def emerge_install(
    packages: Sequence[str],
    *,
    attempts: int = 3,
    display_server: Optional[str] = None,
    portage_dir: str = PATHS.portage_dir,
    target_root: Optional[str] = None,
    dry_run: bool = False,
) -> None:
    """Install packages, escalating to autounmask and USE fixes between attempts.

    portage_dir is the host path of target_root's /etc/portage.
    """

    if not packages:
        return
    logger.info("Installing with emerge: %s", " ".join(packages))

    for attempt in range(1, attempts + 1):
        logger.info("Installation attempt %s/%s", attempt, attempts)
        argv = list(EMERGE_BASE)
        if attempt > 1:
            argv += EMERGE_AUTOUNMASK
        r = run_cmd(in_root(target_root, [*argv, *packages]), check=False, stream=True, dry_run=dry_run)
        if r.returncode == 0:
            logger.info("Installation successful")
            return

        logger.warning("Installation attempt %s failed", attempt)
        if attempt == attempts:
            break

        logger.info("Attempting to apply configuration changes...")
        run_cmd(in_root(target_root, ["etc-update", "--automode", "-5"]), check=False, input_text="", dry_run=dry_run)
        apply_use_fixes(r.output, portage_dir=portage_dir, display_server=display_server)

    raise RuntimeError(f"Installation failed after {attempts} attempts: {' '.join(packages)}")


def sync_repository(*, target_root: Optional[str] = None, dry_run: bool = False) -> None:
    logger.info("Syncing Gentoo repository...")
    r = run_cmd(in_root(target_root, ["emerge-webrsync"]), check=False, stream=True, dry_run=dry_run)
    if r.returncode != 0:
        logger.warning("emerge-webrsync failed, trying fallback...")
        run_cmd(in_root(target_root, ["emerge", "--sync"]), stream=True, dry_run=dry_run)


def pick_profile(listing: str, init_system: str, flavor: str = "minimal") -> Optional[str]:
    """Pick the eselect profile number for an amd64 install from `eselect profile list` output."""

    entries: List[tuple[str, str]] = []
    for line in listing.splitlines():
        m = _PROFILE_LINE.match(line)
        if not m:
            continue
        num, name = m.group(1), m.group(2)
        if any(x in name for x in _PROFILE_EXCLUDE):
            continue
        entries.append((num, name))

    suffix_parts = []
    if flavor == "desktop":
        suffix_parts.append("desktop")
    if init_system == "systemd":
        suffix_parts.append("systemd")
    suffix = "/".join(suffix_parts)
    exact = re.compile(r"^default/linux/amd64/[\d.]+" + (re.escape("/" + suffix) if suffix else "") + "$")

    for num, name in entries:
        if exact.match(name):
            return num

    loose = "systemd" if init_system == "systemd" else "default/linux/amd64/"
    for num, name in entries:
        if loose in name.lower() and (init_system == "systemd" or "systemd" not in name):
            return num
    return None


def select_profile(
    *,
    target_root: Optional[str],
    init_system: str,
    flavor: str = "minimal",
    dry_run: bool = False,
) -> Optional[str]:
    listing = run_cmd(in_root(target_root, ["eselect", "profile", "list"]), check=False, dry_run=dry_run)
    num = pick_profile(listing.stdout, init_system, flavor)
    if num is None:
        logger.warning("Could not auto-detect profile, using current default")
    else:
        r = run_cmd(in_root(target_root, ["eselect", "profile", "set", num]), check=False, dry_run=dry_run)
        if r.returncode != 0:
            logger.warning("Failed to set profile %s", num)
    shown = run_cmd(in_root(target_root, ["eselect", "profile", "show"]), check=False, dry_run=dry_run)
    logger.info("Profile: %s", (shown.stdout.strip().splitlines() or ["unknown"])[-1].strip())
    return num


def emerge_config(atom: str, *, target_root: Optional[str] = None, dry_run: bool = False) -> None:
    run_cmd(in_root(target_root, ["emerge", "--config", atom]), stream=True, dry_run=dry_run)


def world_update(*, target_root: Optional[str] = None, dry_run: bool = False) -> None:
    emerge(["@world"], options=["--update", "--deep", "--newuse"], target_root=target_root, dry_run=dry_run)
