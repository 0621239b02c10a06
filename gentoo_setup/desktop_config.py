"""Desktop wizard answers.

All questions are asked upfront so the installation can run unattended
afterwards. Answers may also come from an ``--answers`` file using the keys in
``DEFAULTS``.
"""

from __future__ import annotations

import logging
import pwd
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .prompts import Prompter

logger = logging.getLogger(__name__)

USER_ACTIONS = ["create", "update", "skip"]
PRIVILEGE_TOOLS = ["doas", "sudo", "skip"]
FLATPAK_CHOICES = ["yes", "no", "skip"]
FLATPAK_SCOPES = ["system", "user"]
DISPLAY_SERVERS = ["Xorg", "Wayland", "Xlibre", "skip"]
DESKTOPS = ["CLI", "KDE", "Gnome", "MATE", "LXDE", "skip"]
DESKTOP_PROFILES = ["minimal", "full"]
DISPLAY_MANAGERS = ["SDDM", "GDM", "LightDM", "None", "skip"]

DEFAULTS: Dict[str, Any] = {
    "user_action": "create",
    "privilege": "doas",
    "flatpak": "yes",
    "flatpak_scope": "system",
    "display_server": "Xorg",
    "desktop": "CLI",
    "desktop_profile": "minimal",
    "display_manager": "SDDM",
    "autostart": True,
}


def user_exists(name: str, root: str = "/") -> bool:
    """Look name up on the running system, or in root's /etc/passwd."""

    if root in ("", "/"):
        try:
            pwd.getpwnam(name)
        except KeyError:
            return False
        return True
    passwd = Path(root) / "etc/passwd"
    if not passwd.is_file():
        return False
    return any(line.split(":", 1)[0] == name for line in passwd.read_text(encoding="utf-8").splitlines())


@dataclass(frozen=True)
class DesktopConfig:
    raw: Dict[str, Any]

    @property
    def user_action(self) -> str:
        return str(self.raw.get("user_action") or "skip").lower()

    @property
    def username(self) -> str:
        return str(self.raw.get("username") or "")

    @property
    def privilege(self) -> str:
        return str(self.raw.get("privilege") or "skip").lower()

    @property
    def flatpak(self) -> bool:
        return str(self.raw.get("flatpak") or "").lower() == "yes"

    @property
    def flatpak_scope(self) -> str:
        return str(self.raw.get("flatpak_scope") or "system").lower()

    @property
    def display_server(self) -> str:
        return str(self.raw.get("display_server") or "skip").lower()

    @property
    def desktop(self) -> str:
        return str(self.raw.get("desktop") or "skip").lower()

    @property
    def desktop_profile(self) -> str:
        return str(self.raw.get("desktop_profile") or "").lower()

    @property
    def display_manager(self) -> str:
        return str(self.raw.get("display_manager") or "skip").lower()

    @property
    def autostart(self) -> bool:
        return bool(self.raw.get("autostart"))

    @property
    def xlibre(self) -> bool:
        return self.display_server == "xlibre"


def _canonical(value: Any, options: List[str], name: str) -> str:
    for opt in options:
        if str(value).strip().lower() == opt.lower():
            return opt
    raise ValueError(f"Invalid {name}: {value!r} (expected one of {', '.join(options)})")


def collect_desktop_config(
    cfg: Dict[str, Any],
    secrets: Dict[str, Any],
    prompter: Prompter,
    *,
    exists: Callable[[str], bool] = user_exists,
) -> DesktopConfig:
    """Fill cfg by asking for every answer not already present."""

    def ask(key: str, options: List[str], prompt: str) -> str:
        if cfg.get(key) in (None, ""):
            cfg[key] = prompter.choice(prompt, DEFAULTS[key], options)
        cfg[key] = _canonical(cfg[key], options, key)
        return cfg[key].lower()

    action = ask("user_action", USER_ACTIONS, "User management")
    if action == "create":
        while True:
            name = cfg.get("username") or prompter.text("Enter new username")
            if exists(name):
                logger.warning("User %s already exists. Choose 'update' to modify groups instead.", name)
                cfg.pop("username", None)
                continue
            cfg["username"] = name
            break
        logger.info("User %s will be created.", cfg["username"])
        if not secrets.get("user_password"):
            secrets["user_password"] = prompter.password(f"Password for {cfg['username']}")
    elif action == "update":
        name = cfg.get("username") or prompter.text("Enter existing username to update groups")
        if exists(name):
            cfg["username"] = name
        else:
            logger.warning("User %s does not exist. Will skip user management.", name)
            cfg["user_action"] = "skip"
            cfg.pop("username", None)
    else:
        cfg.pop("username", None)

    ask("privilege", PRIVILEGE_TOOLS, "Install privilege escalation tool")

    if ask("flatpak", FLATPAK_CHOICES, "Install Flatpak?") == "yes":
        ask("flatpak_scope", FLATPAK_SCOPES, "Flatpak scope")
    else:
        cfg.pop("flatpak_scope", None)

    ask("display_server", DISPLAY_SERVERS, "Select display server")

    desktop = ask("desktop", DESKTOPS, "Select desktop environment")
    if desktop in {"kde", "gnome"}:
        label = "KDE" if desktop == "kde" else "Gnome"
        ask("desktop_profile", DESKTOP_PROFILES, f"{label} profile")
    else:
        cfg.pop("desktop_profile", None)

    dm = ask("display_manager", DISPLAY_MANAGERS, "Select display manager")
    if dm in {"none", "skip"}:
        cfg["autostart"] = False
    elif "autostart" not in cfg:
        cfg["autostart"] = prompter.yes_no("Start GUI on boot?", DEFAULTS["autostart"])

    return DesktopConfig(raw=cfg)


def summarize_desktop_config(dc: DesktopConfig) -> List[str]:
    def suffix(text: Optional[str]) -> str:
        return f" ({text})" if text else ""

    raw = dc.raw
    return [
        f"User management:     {raw.get('user_action')}{suffix(dc.username)}",
        f"Priv escalation:     {raw.get('privilege')}",
        f"Flatpak:             {raw.get('flatpak')}{suffix(dc.flatpak_scope if dc.flatpak else None)}",
        f"Display server:      {raw.get('display_server')}",
        f"Desktop environment: {raw.get('desktop')}{suffix(dc.desktop_profile)}",
        f"Display manager:     {raw.get('display_manager')}{suffix('autostart: yes' if dc.autostart else None)}",
    ]
