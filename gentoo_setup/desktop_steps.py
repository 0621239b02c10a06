from __future__ import annotations

import logging
import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from .desktop_config import DesktopConfig
from .lib.chroot import in_root
from .lib.command import CmdResult, have_cmd, run_cmd
from .lib.portage import emerge_install
from .lib.services import enable_service, start_service
from .state_store import is_step_completed, mark_step_completed
from .steps.common import write_file

logger = logging.getLogger(__name__)

USER_GROUPS = "wheel,audio,video,usb,portage"
DOAS_RULE = "permit persist :wheel"
SUDO_RULE = "%wheel ALL=(ALL:ALL) ALL"
FLATHUB_URL = "https://dl.flathub.org/repo/flathub.flatpakrepo"
XLIBRE_REPO_URL = "https://github.com/X11Libre/ports-gentoo.git"

_DOAS_RE = re.compile(r"^\s*permit\s+persist\s+:wheel\b", re.MULTILINE)
_SUDO_RE = re.compile(r"^\s*%wheel\s+ALL=\(ALL(:ALL)?\)\s+ALL\b", re.MULTILINE)
_QTBASE_NO_OPENGL = re.compile(r"qtbase.*-opengl")

DISPLAY_SERVER_PACKAGES = {
    "xorg": ["x11-base/xorg-server"],
    "wayland": ["dev-libs/wayland"],
    "xlibre": ["x11-base/xlibre-server"],
}

DESKTOP_PACKAGES = {
    ("kde", "minimal"): ["kde-plasma/plasma-meta"],
    ("kde", "full"): ["kde-plasma/kde-meta"],
    ("gnome", "minimal"): ["gnome-base/gnome-light"],
    ("gnome", "full"): ["gnome-base/gnome"],
    ("mate", ""): ["mate-base/mate"],
    ("lxde", ""): ["lxde-base/lxde-meta"],
    ("cli", ""): [],
}

DISPLAY_MANAGER_PACKAGES = {
    "sddm": ["x11-misc/sddm"],
    "gdm": ["gnome-base/gdm"],
    "lightdm": ["x11-misc/lightdm", "x11-misc/lightdm-gtk-greeter"],
}

XLIBRE_REPOS_CONF = """[xlibre]
location = /var/db/repos/xlibre
sync-type = git
sync-uri = https://github.com/X11Libre/ports-gentoo.git
priority = 50
auto-sync = yes
"""

XLIBRE_USE = """# XLibre: Disable Wayland support globally, use X11 only (added by setup script)
# This file uses zzz- prefix to override zz-autounmask settings
*/*::gentoo -wayland X opengl

# Qt packages: explicitly disable wayland, enable X11 and OpenGL
dev-qt/qtbase -wayland X opengl
dev-qt/qtwayland -wayland

# KDE Plasma and Frameworks: disable wayland
kde-plasma/* -wayland
kde-frameworks/* -wayland

# OpenCV: enable qt6 to satisfy opengl requirement (needs gtk3, qt6, or wayland)
media-libs/opencv qt6
"""

SDDM_INIT_SCRIPT = """#!/sbin/openrc-run
# Copyright 1999-2023 Gentoo Authors
# Distributed under the terms of the GNU General Public License v2

description="Simple Desktop Display Manager"

command="/usr/bin/sddm"
command_background="yes"
pidfile="/run/sddm.pid"

depend() {
    need localmount xdm
    use logger
    after bootmisc
}

start_pre() {
    checkpath -d /run/sddm
}
"""

LIGHTDM_GREETER_CONF = "[Seat:*]\ngreeter-session=lightdm-gtk-greeter\n"


@dataclass(frozen=True)
class DesktopCtx:
    cfg: DesktopConfig
    secrets: Dict[str, Any]
    dry_run: bool
    root: str = "/"

    @property
    def live(self) -> bool:
        return self.root in ("", "/")

    def path(self, rel: str) -> Path:
        return Path(self.root) / rel.lstrip("/")

    @property
    def portage_dir(self) -> str:
        return str(self.path("etc/portage"))

    def cmd(self, argv: List[str], **kwargs) -> CmdResult:
        """run_cmd inside root (a chroot unless root is the running system)."""

        return run_cmd(in_root(self.root, argv), dry_run=self.dry_run, **kwargs)

    def has_cmd(self, name: str) -> bool:
        if self.live:
            return have_cmd(name)
        return any((self.path(d) / name).exists() for d in ("usr/sbin", "usr/bin", "sbin", "bin"))

    def install(self, packages: List[str]) -> None:
        emerge_install(
            packages,
            display_server=self.cfg.display_server,
            portage_dir=self.portage_dir,
            target_root=self.root,
            dry_run=self.dry_run,
        )

    def enable(self, service: str) -> None:
        enable_service(service, "openrc", target_root=self.root, check=False, dry_run=self.dry_run)


def desktop_packages(desktop: str, profile: str = "") -> List[str]:
    key = (desktop.lower(), profile.lower() if desktop.lower() in {"kde", "gnome"} else "")
    if key not in DESKTOP_PACKAGES:
        raise ValueError(f"Unknown desktop environment: {desktop}")
    return DESKTOP_PACKAGES[key]


def repository_names(listing: str) -> List[str]:
    """Names from `eselect repository list -i` ("  [3]  xlibre # (...)")."""

    names: List[str] = []
    for line in listing.splitlines():
        for token in line.split():
            if token.startswith("[") and token.endswith("]"):
                continue
            names.append(token)
            break
    return names


def flatpak_remote_names(listing: str) -> List[str]:
    return [line.split()[0] for line in listing.splitlines() if line.strip()]


def _skip(state: Dict[str, Any], step_id: str, force: bool) -> bool:
    if (not force) and is_step_completed(state, step_id):
        logger.info("skip %s (already completed)", step_id)
        return True
    return False


def step_10_users(*, ctx: DesktopCtx, state: Dict[str, Any], force: bool) -> None:
    step_id = "10_users"
    if _skip(state, step_id, force):
        return

    name = ctx.cfg.username
    if ctx.cfg.user_action == "create":
        password = ctx.secrets.get("user_password")
        if not password:
            raise RuntimeError(f"Password for {name} missing; it is never stored, so re-run the wizard")
        logger.info("Creating user %s", name)
        ctx.cmd(["useradd", "-m", "-G", USER_GROUPS, "-s", "/bin/bash", name])
        ctx.cmd(["chpasswd"], input_text=f"{name}:{password}\n")
        logger.info("User %s created successfully", name)
    elif ctx.cfg.user_action == "update" and name:
        logger.info("Updating group membership for %s", name)
        r = ctx.cmd(["usermod", "-aG", USER_GROUPS, name], check=False)
        if r.returncode != 0:
            logger.warning("Failed to adjust groups for %s", name)
    else:
        logger.info("Skipping user management.")

    mark_step_completed(state, step_id)


def configure_doas(ctx: DesktopCtx) -> None:
    ctx.install(["app-admin/doas"])
    conf = ctx.path("etc/doas.conf")
    if conf.is_file():
        if _DOAS_RE.search(conf.read_text(encoding="utf-8")):
            logger.info("doas.conf already permits wheel with persist.")
        elif ctx.dry_run:
            logger.info("Would append '%s' to %s", DOAS_RULE, conf)
        else:
            logger.warning("Updating %s to permit wheel with persist; backup at %s.bak", conf, conf)
            shutil.copy2(conf, f"{conf}.bak")
            with conf.open("a", encoding="utf-8") as f:
                f.write(DOAS_RULE + "\n")
    else:
        write_file(ctx.root, "/etc/doas.conf", DOAS_RULE + "\n", dry_run=ctx.dry_run, mode=0o440)
    logger.info("doas configured for wheel group.")


def configure_sudo(ctx: DesktopCtx) -> None:
    ctx.install(["app-admin/sudo"])
    conf = ctx.path("etc/sudoers.d/10-wheel")
    if conf.is_file() and _SUDO_RE.search(conf.read_text(encoding="utf-8")):
        logger.info("Sudo already allows wheel group.")
    else:
        write_file(ctx.root, "/etc/sudoers.d/10-wheel", SUDO_RULE + "\n", dry_run=ctx.dry_run, mode=0o440)
    if ctx.has_cmd("visudo"):
        r = ctx.cmd(["visudo", "-c"], check=False)
        if r.returncode != 0:
            logger.warning("visudo syntax check reported issues.")
    logger.info("sudo configured for wheel group.")


def step_20_privilege(*, ctx: DesktopCtx, state: Dict[str, Any], force: bool) -> None:
    step_id = "20_privilege"
    if _skip(state, step_id, force):
        return

    if ctx.cfg.privilege == "doas":
        logger.info("Configuring doas...")
        configure_doas(ctx)
    elif ctx.cfg.privilege == "sudo":
        logger.info("Configuring sudo...")
        configure_sudo(ctx)
    else:
        logger.info("Skipping privilege escalation setup.")

    mark_step_completed(state, step_id)


def step_30_flatpak(*, ctx: DesktopCtx, state: Dict[str, Any], force: bool) -> None:
    step_id = "30_flatpak"
    if _skip(state, step_id, force):
        return

    if not ctx.cfg.flatpak:
        logger.info("Skipping Flatpak.")
        mark_step_completed(state, step_id)
        return

    scope = ctx.cfg.flatpak_scope
    logger.info("Installing Flatpak (scope: %s)...", scope)
    ctx.install(["sys-apps/flatpak", "sys-apps/dbus"])
    ctx.enable("dbus")
    if ctx.live:
        start_service("dbus", dry_run=ctx.dry_run)

    scope_flag = "--system" if scope == "system" else "--user"
    remotes = ctx.cmd(["flatpak", "remotes", scope_flag], check=False)
    if "flathub" in flatpak_remote_names(remotes.stdout):
        logger.info("Flathub remote already configured (%s).", scope)
    else:
        logger.info("Adding Flathub remote (%s).", scope)
        r = ctx.cmd(["flatpak", "remote-add", "--if-not-exists", scope_flag, "flathub", FLATHUB_URL], check=False)
        if r.returncode != 0:
            logger.warning("Failed to add Flathub; ensure network is available.")

    mark_step_completed(state, step_id)


def setup_xlibre_overlay(ctx: DesktopCtx) -> None:
    logger.info("Setting up the X11Libre overlay (%s)", XLIBRE_REPO_URL)
    ctx.install(["dev-vcs/git", "app-eselect/eselect-repository"])

    listing = ctx.cmd(["eselect", "repository", "list", "-i"], check=False).stdout
    names = repository_names(listing)
    if "xlibre" in names:
        logger.info("xlibre overlay already configured.")
        return

    if "x11libre" not in names:
        logger.info("Adding xlibre overlay via eselect repository.")
        r = ctx.cmd(["eselect", "repository", "add", "x11libre", "git", XLIBRE_REPO_URL], check=False)
        if r.returncode != 0:
            logger.warning("eselect add failed; attempting manual overlay configuration.")
            overlay = "/var/db/repos/xlibre"
            if (ctx.path(overlay) / ".git").is_dir():
                pull = ctx.cmd(["git", "-C", overlay, "pull", "--ff-only"], check=False)
                if pull.returncode != 0:
                    logger.warning("Overlay git pull failed.")
            else:
                clone = ctx.cmd(["git", "clone", XLIBRE_REPO_URL, overlay], check=False)
                if clone.returncode != 0:
                    logger.warning("Overlay git clone failed.")
            write_file(ctx.root, "/etc/portage/repos.conf/xlibre.conf", XLIBRE_REPOS_CONF, dry_run=ctx.dry_run)

    logger.info("Syncing xlibre overlay...")
    for repo in ("xlibre", "x11libre"):
        if ctx.cmd(["emaint", "sync", "-r", repo], check=False).returncode == 0:
            return
    logger.warning("emaint sync failed; continuing.")


def configure_xlibre_use_flags(ctx: DesktopCtx) -> None:
    logger.info("Configuring USE flags for XLibre (disabling Wayland, enabling X11)")
    use_dir = Path(ctx.portage_dir) / "package.use"

    wayland_opengl = use_dir / "wayland-opengl"
    if wayland_opengl.exists():
        logger.info("Removing conflicting wayland-opengl configuration")
        if not ctx.dry_run:
            wayland_opengl.unlink()

    autounmask = use_dir / "zz-autounmask"
    if autounmask.is_file():
        logger.info("Fixing conflicting qtbase -opengl entries in zz-autounmask")
        lines = autounmask.read_text(encoding="utf-8").splitlines(keepends=True)
        kept = [ln for ln in lines if not _QTBASE_NO_OPENGL.search(ln)]
        write_file(ctx.root, os.path.relpath(autounmask, ctx.root), "".join(kept), dry_run=ctx.dry_run)

    # zzz- sorts after zz-autounmask so these flags win.
    write_file(ctx.root, os.path.relpath(use_dir / "zzz-xlibre", ctx.root), XLIBRE_USE, dry_run=ctx.dry_run)
    logger.info("Created/updated %s with XLibre-specific USE flags", use_dir / "zzz-xlibre")


def step_40_display_server(*, ctx: DesktopCtx, state: Dict[str, Any], force: bool) -> None:
    step_id = "40_display_server"
    if _skip(state, step_id, force):
        return

    ds = ctx.cfg.display_server
    if ds == "skip":
        logger.info("Skipping display server installation.")
    elif ds not in DISPLAY_SERVER_PACKAGES:
        logger.warning("Unknown display server: %s", ds)
    else:
        logger.info("Installing display server: %s...", ds)
        if ds == "xlibre":
            setup_xlibre_overlay(ctx)
            configure_xlibre_use_flags(ctx)
        ctx.install(DISPLAY_SERVER_PACKAGES[ds])

    mark_step_completed(state, step_id)


def step_50_desktop(*, ctx: DesktopCtx, state: Dict[str, Any], force: bool) -> None:
    step_id = "50_desktop"
    if _skip(state, step_id, force):
        return

    de = ctx.cfg.desktop
    if de == "skip":
        logger.info("Skipping desktop environment installation.")
    elif de == "cli":
        logger.info("CLI selected; skipping desktop environment installation.")
    else:
        profile = ctx.cfg.desktop_profile
        logger.info("Installing %s%s...", de, f" ({profile} profile)" if profile else "")
        ctx.install(desktop_packages(de, profile))

    mark_step_completed(state, step_id)


def step_60_display_manager(*, ctx: DesktopCtx, state: Dict[str, Any], force: bool) -> None:
    step_id = "60_display_manager"
    if _skip(state, step_id, force):
        return

    dm = ctx.cfg.display_manager
    if dm in {"skip", "none"}:
        logger.info("Skipping display manager installation.")
        mark_step_completed(state, step_id)
        return
    if dm not in DISPLAY_MANAGER_PACKAGES:
        raise ValueError(f"Unknown display manager: {dm}")

    logger.info("Installing display manager: %s...", dm)
    ctx.install(DISPLAY_MANAGER_PACKAGES[dm])

    if dm == "sddm" and not ctx.path("etc/init.d/sddm").exists():
        logger.info("Creating SDDM OpenRC init script...")
        write_file(ctx.root, "/etc/init.d/sddm", SDDM_INIT_SCRIPT, dry_run=ctx.dry_run, mode=0o755)
    elif dm == "lightdm":
        write_file(ctx.root, "/etc/lightdm/lightdm.conf.d/50-greeter.conf", LIGHTDM_GREETER_CONF, dry_run=ctx.dry_run)

    if ctx.cfg.xlibre:
        logger.info("Skipping xdm configuration (XLibre display server selected).")
    else:
        ctx.enable("xdm")
        write_file(ctx.root, "/etc/conf.d/xdm", f'DISPLAYMANAGER="{dm}"\n', dry_run=ctx.dry_run)

    if ctx.cfg.autostart:
        ctx.enable(dm)

    mark_step_completed(state, step_id)


ALL_STEPS = [
    step_10_users,
    step_20_privilege,
    step_30_flatpak,
    step_40_display_server,
    step_50_desktop,
    step_60_display_manager,
]
