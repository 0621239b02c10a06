from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from ..lib.chroot import chroot_cmd
from ..lib.portage import emerge, emerge_config
from ..lib.services import enable_service
from ..lib.sysconfig import ensure_line, eselect_locale_name, hostname_file, locale_gen_line, render_hosts
from .common import is_dry_run, require_target_root, write_file

logger = logging.getLogger(__name__)


class ConfigureSystemStep:
    step_id = "55_configure_system"
    title = "Configuring timezone, locale, hostname and networking"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        target_root = require_target_root(state)
        dry_run = is_dry_run(state)
        init_system = str(cfg.get("init_system", "openrc"))

        timezone = str(cfg.get("timezone", "America/New_York"))
        write_file(target_root, "/etc/timezone", timezone + "\n", dry_run=dry_run)
        if init_system == "systemd":
            chroot_cmd(target_root, ["ln", "-sf", f"../usr/share/zoneinfo/{timezone}", "/etc/localtime"], dry_run=dry_run)
        emerge_config("sys-libs/timezone-data", target_root=target_root, dry_run=dry_run)

        locale = str(cfg.get("locale", "en_US.UTF-8"))
        locale_gen = Path(target_root) / "etc/locale.gen"
        current = locale_gen.read_text(encoding="utf-8") if locale_gen.exists() else ""
        write_file(target_root, "/etc/locale.gen", ensure_line(current, locale_gen_line(locale)), dry_run=dry_run)
        chroot_cmd(target_root, ["locale-gen"], dry_run=dry_run)
        r = chroot_cmd(target_root, ["eselect", "locale", "set", eselect_locale_name(locale)], check=False, dry_run=dry_run)
        if r.returncode != 0:
            logger.warning("eselect locale set %s failed; falling back to C.UTF-8", eselect_locale_name(locale))
            chroot_cmd(target_root, ["eselect", "locale", "set", "C.UTF-8"], dry_run=dry_run)
        chroot_cmd(target_root, ["env-update"], dry_run=dry_run)

        hostname = str(cfg.get("hostname", "gentoo")).strip() or "gentoo"
        path, contents = hostname_file(init_system, hostname)
        write_file(target_root, path, contents, dry_run=dry_run)
        write_file(target_root, "/etc/hosts", render_hosts(hostname), dry_run=dry_run)

        logger.info("Installing dhcpcd...")
        emerge(["net-misc/dhcpcd"], target_root=target_root, dry_run=dry_run)
        if init_system == "systemd":
            if not enable_service("dhcpcd", "systemd", target_root=target_root, check=False, dry_run=dry_run):
                enable_service("systemd-networkd", "systemd", target_root=target_root, dry_run=dry_run)
        else:
            enable_service("dhcpcd", "openrc", target_root=target_root, dry_run=dry_run)

        logger.info("Configured timezone=%s locale=%s hostname=%s", timezone, locale, hostname)
        return state
