"""Install Timekpr-nExT (https://github.com/polesapart/timekpr-next) from source on Gentoo.

Files are laid out the way the upstream ``debian/install`` manifest says, so
the result matches the distribution packages.
"""

from __future__ import annotations

import argparse
import glob
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .lib.command import have_cmd, run_cmd
from .lib.env import PATHS, need_cmds, require_root
from .lib.files import chmod_tree, chown_root, copy_tree, install_file
from .lib.portage import emerge_available
from .logging_utils import configure_logging
from .prompts import Prompter

logger = logging.getLogger(__name__)

APP_NAME = "Timekpr-nExT"
REPO_URL_DEFAULT = "https://github.com/polesapart/timekpr-next.git"
BRANCH_DEFAULT = "master"
SERVICE = "timekpr.service"

DEPENDENCIES = [
    "dev-vcs/git",
    "sys-devel/gettext",
    "x11-misc/xdg-utils",
    "dev-util/desktop-file-utils",
    "dev-lang/python:3.11",
    "dev-python/dbus-python",
    "dev-python/pygobject:3",
    "dev-python/psutil",
    "sys-auth/polkit",
    "sys-apps/systemd",
    "x11-libs/gtk+:3",
    "dev-libs/gobject-introspection",
]
# AppIndicator support is not available in every Gentoo configuration.
OPTIONAL_DEPENDENCIES = ["dev-libs/libappindicator:3", "dev-libs/libayatana-appindicator"]

PYTHON_MODULES = "usr/lib/python3/dist-packages/timekpr"
CONFIG_TREES = [PYTHON_MODULES, "etc/timekpr"]
SINGLE_FILES = [
    "etc/dbus-1/system.d/timekpr.conf",
    "usr/share/polkit-1/actions/com.ubuntu.timekpr.pkexec.policy",
    "lib/systemd/system/timekpr.service",
]
WORK_DIRS = ["var/lib/timekpr/config", "var/lib/timekpr/work"]


@dataclass(frozen=True)
class ManifestEntry:
    src: str
    dest: str


def work_base() -> str:
    return os.path.join(tempfile.gettempdir(), "timekpr-next-gentoo-install")


def parse_install_manifest(text: str) -> List[ManifestEntry]:
    """Parse a debian/install file: one ``src dest`` pair per line."""

    entries: List[ManifestEntry] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        fields = line.split()
        if len(fields) < 2:
            continue
        entries.append(ManifestEntry(src=fields[0], dest=fields[1]))
    return entries


def install_deps(*, auto: bool, dry_run: bool = False) -> None:
    logger.info("Installing dependencies for %s...", APP_NAME)
    pkgs = list(DEPENDENCIES)
    for atom in OPTIONAL_DEPENDENCIES:
        if emerge_available(atom, dry_run=dry_run):
            pkgs.append(atom)

    opts = ["--noreplace", "--quiet" if auto else "--ask"]
    logger.info("Installing: %s", " ".join(pkgs))
    # --ask needs the terminal.
    r = run_cmd(["emerge", *opts, *pkgs], check=False, stream=auto, capture=auto, dry_run=dry_run)
    if r.returncode != 0:
        logger.warning("Some dependencies may be masked or missing; continuing...")
        logger.warning("You may need to manually install missing packages or unmask them.")


def clone_repo(repo_url: str, branch: str, repo_dir: str, *, dry_run: bool = False) -> None:
    logger.info("Cloning %s repository...", APP_NAME)
    if not dry_run:
        Path(repo_dir).parent.mkdir(parents=True, exist_ok=True)

    if os.path.isdir(os.path.join(repo_dir, ".git")):
        logger.info("Repository already exists, updating...")
        run_cmd(["git", "-C", repo_dir, "fetch", "--all"], dry_run=dry_run)
        run_cmd(["git", "-C", repo_dir, "checkout", branch], dry_run=dry_run)
        r = run_cmd(["git", "-C", repo_dir, "reset", "--hard", f"origin/{branch}"], check=False, dry_run=dry_run)
        if r.returncode != 0:
            # Tags have no origin/<tag> ref.
            run_cmd(["git", "-C", repo_dir, "reset", "--hard", branch], dry_run=dry_run)
    else:
        run_cmd(["git", "clone", "--depth", "1", "--branch", branch, repo_url, repo_dir], dry_run=dry_run)

    logger.info("Repository cloned to: %s", repo_dir)


def install_files(
    repo_dir: str,
    entries: List[ManifestEntry],
    *,
    dest_root: str = "/",
    dry_run: bool = False,
) -> List[str]:
    """Copy every manifest entry below dest_root; returns the installed paths."""

    installed: List[str] = []
    for entry in entries:
        src_path = os.path.join(repo_dir, entry.src)
        dest_path = os.path.join(dest_root, entry.dest.lstrip("/"))

        if not os.path.exists(src_path):
            logger.warning("Source not found: %s (skipping)", src_path)
            continue

        if not dry_run:
            os.makedirs(dest_path, exist_ok=True)

        if os.path.isdir(src_path):
            out = os.path.join(dest_path, os.path.basename(entry.src.rstrip("/")))
            logger.info("  Copying directory: %s -> %s", entry.src, out)
            copy_tree(src_path, out, dry_run=dry_run)
            installed.append(out)
        else:
            logger.info("  Installing: %s -> %s", entry.src, dest_path)
            installed.append(install_file(src_path, dest_path, mode=0o644, dry_run=dry_run))
    return installed


def _best_effort(what: str, fn, *args, **kwargs) -> None:
    try:
        fn(*args, **kwargs)
    except OSError as e:
        logger.warning("%s failed: %s", what, e)


def set_permissions(*, root: str = "/") -> None:
    logger.info("Setting file permissions...")

    for exe in sorted(glob.glob(os.path.join(root, "usr/bin/timekpr*"))):
        _best_effort(f"chmod {exe}", os.chmod, exe, 0o755)
        _best_effort(f"chown {exe}", chown_root, exe)

    for rel in CONFIG_TREES:
        tree = os.path.join(root, rel)
        if os.path.isdir(tree):
            _best_effort(f"chmod {tree}", chmod_tree, tree)
            _best_effort(f"chown {tree}", chown_root, tree, recursive=True)

    for rel in SINGLE_FILES:
        path = os.path.join(root, rel)
        if os.path.isfile(path):
            _best_effort(f"chmod {path}", os.chmod, path, 0o644)
            _best_effort(f"chown {path}", chown_root, path)

    for rel in WORK_DIRS:
        os.makedirs(os.path.join(root, rel), exist_ok=True)
    state_dir = os.path.join(root, "var/lib/timekpr")
    _best_effort(f"chown {state_dir}", chown_root, state_dir, recursive=True)
    _best_effort(f"chmod {state_dir}", chmod_tree, state_dir, dir_mode=0o755, file_mode=0o755)


def compile_python_modules(*, root: str = "/", dry_run: bool = False) -> None:
    modules = os.path.join(root, PYTHON_MODULES)
    if not os.path.isdir(modules):
        return
    logger.info("Byte-compiling Python modules...")
    python = shutil.which("python3") or shutil.which("python")
    if not python:
        logger.warning("No Python interpreter found for byte-compilation")
        return
    r = run_cmd([python, "-m", "compileall", "-q", modules], check=False, dry_run=dry_run)
    if r.returncode != 0:
        logger.warning("Python byte-compilation failed (non-fatal)")


def refresh_caches(*, dry_run: bool = False) -> None:
    logger.info("Refreshing system caches...")
    for tool, argv in (
        ("update-desktop-database", ["update-desktop-database", "-q", "/usr/share/applications"]),
        ("gtk-update-icon-cache", ["gtk-update-icon-cache", "-q", "-f", "/usr/share/icons/hicolor"]),
        ("systemctl", ["systemctl", "daemon-reload"]),
    ):
        if have_cmd(tool):
            r = run_cmd(argv, check=False, dry_run=dry_run)
            if r.returncode != 0:
                logger.warning("%s failed (non-fatal)", " ".join(argv))


def configure_service(*, auto: bool, prompter: Prompter, dry_run: bool = False) -> None:
    logger.info("%s service management:", APP_NAME)
    if not have_cmd("systemctl"):
        logger.warning("systemd not detected. Please manually configure %s to start at boot.", APP_NAME)
        return

    if auto:
        run_cmd(["systemctl", "enable", SERVICE], check=False, dry_run=dry_run)
        logger.info("  Timekpr service enabled (not started)")
    elif prompter.yes_no(f"Do you want to enable and start {APP_NAME} service?", True):
        run_cmd(["systemctl", "enable", SERVICE], check=False, dry_run=dry_run)
        run_cmd(["systemctl", "start", SERVICE], check=False, dry_run=dry_run)
        logger.info("  Timekpr service enabled and started")
    else:
        logger.info("  You can manually enable it later with: systemctl enable %s", SERVICE)
        logger.info("  And start it with: systemctl start %s", SERVICE)


def print_summary(*, repo_url: str, branch: str, log_path: str, root: str = "/", dry_run: bool = False) -> None:
    logger.info("%s Installation Summary", APP_NAME)
    logger.info("Repository: %s", repo_url)
    logger.info("Branch/Tag: %s", branch)

    executables = sorted(glob.glob(os.path.join(root, "usr/bin/timekpr*")))
    logger.info("Executables:")
    for exe in executables or ["None found"]:
        logger.info("  %s", exe)

    desktop = sorted(glob.glob(os.path.join(root, "usr/share/applications/timekpr*.desktop")))
    logger.info("Desktop files:")
    for path in desktop or ["None found"]:
        logger.info("  %s", path)

    if have_cmd("systemctl"):
        enabled = run_cmd(["systemctl", "is-enabled", SERVICE], check=False, dry_run=dry_run).returncode == 0
        active = run_cmd(["systemctl", "is-active", SERVICE], check=False, dry_run=dry_run).returncode == 0
        logger.info("Service status: %s", "ENABLED" if enabled else "DISABLED")
        logger.info("Service running: %s", "YES" if active else "NO")

    logger.info("Next steps: start the service (systemctl start %s), then run 'timekpra' to set user limits.", SERVICE)
    logger.info("Log file: %s", log_path)


def run(
    *,
    auto: bool = False,
    branch: str = BRANCH_DEFAULT,
    repo_url: str = REPO_URL_DEFAULT,
    log_path: str = PATHS.timekpr_log,
    dry_run: bool = False,
    prompter: Optional[Prompter] = None,
) -> None:
    actual_log = configure_logging(log_path=log_path, mode="w")
    if not dry_run:
        require_root()
    need_cmds("emerge")

    logger.info("Starting %s installation on Gentoo", APP_NAME)
    repo_dir = os.path.join(work_base(), "src")

    install_deps(auto=auto, dry_run=dry_run)
    clone_repo(repo_url, branch, repo_dir, dry_run=dry_run)

    manifest = Path(repo_dir) / "debian/install"
    if not manifest.is_file():
        if not dry_run:
            raise RuntimeError(f"debian/install file not found in {repo_dir}")
        logger.info("Would install files listed in %s", manifest)
    else:
        logger.info("Installing files based on debian/install mapping...")
        install_files(repo_dir, parse_install_manifest(manifest.read_text(encoding="utf-8")), dry_run=dry_run)

    if not dry_run:
        set_permissions()
    compile_python_modules(dry_run=dry_run)
    refresh_caches(dry_run=dry_run)
    configure_service(auto=auto, prompter=prompter or Prompter(), dry_run=dry_run)
    print_summary(repo_url=repo_url, branch=branch, log_path=actual_log, dry_run=dry_run)
    logger.info("Installation completed successfully!")


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="install-timekpr-next", description=f"Install {APP_NAME} on Gentoo")
    p.add_argument("-y", "--yes", action="store_true", help="Install dependencies without prompting")
    p.add_argument("-b", "--branch", default=BRANCH_DEFAULT, help="Git branch/tag to clone (e.g. v0.5.1 for the latest stable)")
    p.add_argument("-r", "--repo", default=REPO_URL_DEFAULT, help="Git repository URL")
    p.add_argument("--log", default=PATHS.timekpr_log)
    p.add_argument("--dry-run", action="store_true")
    args = p.parse_args(argv)

    try:
        run(auto=bool(args.yes), branch=args.branch, repo_url=args.repo, log_path=args.log, dry_run=bool(args.dry_run))
    except Exception:
        logger.exception("An error occurred. See %s for details.", args.log)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
