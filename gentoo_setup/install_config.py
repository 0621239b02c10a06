"""Installer answers: questions, defaults, validation and the pre-flight summary.

Answers already present in ``state["config"]`` (from ``--answers`` or a resumed
state file) are validated but not asked again.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .lib.block import is_block_device
from .lib.stage3 import DEFAULT_MIRROR
from .prompts import Aborted, Prompter

logger = logging.getLogger(__name__)

ROOT_FILESYSTEMS = ("ext4", "btrfs", "xfs")
INIT_SYSTEMS = ("openrc", "systemd")
KERNEL_METHODS = ("bin", "genkernel", "manual")
BOOTLOADERS = ("grub2", "systemd-boot")
STAGE3_FLAVORS = ("minimal", "desktop")

DEFAULTS: Dict[str, Any] = {
    "layout": "simple",
    "root_fs": "ext4",
    "swap": "none",
    "init_system": "openrc",
    "stage3_flavor": "minimal",
    "kernel_method": "genkernel",
    "timezone": "America/New_York",
    "hostname": "gentoo",
    "bootloader": "grub2",
    "locale": "en_US.UTF-8",
    "accept_keywords": "~amd64",
    "mirror": DEFAULT_MIRROR,
    "dns_servers": ["1.1.1.1", "1.0.0.1"],
}


def _block_device_error(path: str) -> Optional[str]:
    if is_block_device(path):
        return None
    return f"Disk {path} does not exist. Please enter a valid block device."


def parse_swap(value: Any, auto_gib: int) -> int:
    """'none' -> 0, 'auto' -> detected size, digits -> GiB."""

    text = str(value).strip().lower()
    if text == "none":
        return 0
    if text == "auto":
        return auto_gib
    if text.isdigit():
        return int(text)
    raise ValueError("Invalid swap size. Please enter a number or 'none'")


def _one_of(value: Any, options, name: str, *, upper: bool = False) -> str:
    text = str(value).strip()
    text = text.upper() if upper else text.lower()
    if text not in options:
        raise ValueError(f"Invalid {name}: {value!r} (expected one of {', '.join(options)})")
    return text


def collect_install_config(
    state: Dict[str, Any],
    prompter: Prompter,
    *,
    block_check: Callable[[str], Optional[str]] = _block_device_error,
) -> Dict[str, Any]:
    """Fill state['config'] (and state['secrets']['root_password']) by asking what is missing."""

    cfg = state.setdefault("config", {})
    hw = state.get("hardware") or {}
    secrets = state.setdefault("secrets", {})

    def ask(key: str, fn: Callable[[], Any]) -> Any:
        if key not in cfg or cfg[key] in (None, ""):
            cfg[key] = fn()
        return cfg[key]

    disk = ask("disk", lambda: prompter.text("Target disk", hw.get("default_disk") or None, validate=block_check))
    err = block_check(disk)
    if err:
        raise ValueError(err)
    logger.info("Selected disk: %s", disk)

    if cfg.get("wipe_confirm") != "WIPE":
        logger.warning("ALL DATA ON %s WILL BE DESTROYED!", disk)
        prompter.confirm_word(f"ALL DATA ON {disk} WILL BE DESTROYED!", "WIPE")
        cfg["wipe_confirm"] = "WIPE"

    cfg["boot_mode"] = _one_of(
        ask("boot_mode", lambda: prompter.choice("Boot mode", hw.get("boot_mode", "UEFI"), ["UEFI", "BIOS"])),
        ("UEFI", "BIOS"),
        "boot mode",
        upper=True,
    )

    cfg["layout"] = _one_of(
        ask("layout", lambda: prompter.choice("Partition layout", DEFAULTS["layout"], ["simple", "custom"])),
        ("simple", "custom"),
        "layout",
    )
    if cfg["layout"] == "custom":
        ask("root_part", lambda: prompter.text("Root partition", validate=block_check))
        boot_label = "EFI system partition" if cfg["boot_mode"] == "UEFI" else "Boot partition"
        ask("boot_part", lambda: prompter.text(boot_label, validate=block_check))
        if "swap_part" not in cfg:
            swap_part = prompter.text("Swap partition (none to skip)", "none")
            cfg["swap_part"] = None if swap_part.lower() == "none" else swap_part

    cfg["root_fs"] = _one_of(
        ask("root_fs", lambda: prompter.choice("Root filesystem", DEFAULTS["root_fs"], list(ROOT_FILESYSTEMS))),
        ROOT_FILESYSTEMS,
        "root filesystem",
    )

    if cfg["layout"] == "custom":
        cfg["swap_gib"] = 0
    else:
        mem_gib = hw.get("mem_gib", 0)
        swap = ask("swap", lambda: prompter.text(f"Swap size in GiB (none/auto/{mem_gib} for RAM size)", DEFAULTS["swap"]))
        cfg["swap_gib"] = parse_swap(swap, int(hw.get("auto_swap_gib", 0)))
        if cfg["swap_gib"]:
            logger.info("Swap size: %s GiB", cfg["swap_gib"])
        else:
            logger.info("No swap partition will be created")

    cfg["init_system"] = _one_of(
        ask("init_system", lambda: prompter.choice("Init system", DEFAULTS["init_system"], list(INIT_SYSTEMS))),
        INIT_SYSTEMS,
        "init system",
    )
    cfg["stage3_flavor"] = _one_of(cfg.get("stage3_flavor") or DEFAULTS["stage3_flavor"], STAGE3_FLAVORS, "stage3 flavor")

    cfg["kernel_method"] = _one_of(
        ask("kernel_method", lambda: prompter.choice("Kernel method", DEFAULTS["kernel_method"], list(KERNEL_METHODS))),
        KERNEL_METHODS,
        "kernel method",
    )

    detected = hw.get("cpu_march", "x86-64")
    if not cfg.get("march"):
        logger.info("Detected CPU optimization: -march=%s", detected)
        if prompter.yes_no("Use this optimization?", True):
            cfg["march"] = detected
        else:
            cfg["march"] = prompter.text("Enter custom -march value", "x86-64")

    ask("timezone", lambda: prompter.text("Timezone", DEFAULTS["timezone"]))
    ask("hostname", lambda: prompter.text("Hostname", DEFAULTS["hostname"]))

    if not secrets.get("root_password"):
        secrets["root_password"] = prompter.password("Root password")

    if cfg["boot_mode"] == "BIOS":
        cfg["bootloader"] = "grub2"
        logger.info("Bootloader: GRUB2 (required for BIOS)")
    else:
        cfg["bootloader"] = _one_of(
            ask("bootloader", lambda: prompter.choice("Bootloader", DEFAULTS["bootloader"], list(BOOTLOADERS))),
            BOOTLOADERS,
            "bootloader",
        )
        if cfg["bootloader"] == "systemd-boot" and cfg["init_system"] != "systemd":
            logger.warning("systemd-boot requires systemd. Switching to GRUB2.")
            cfg["bootloader"] = "grub2"

    for key in ("locale", "accept_keywords", "mirror", "dns_servers"):
        cfg.setdefault(key, DEFAULTS[key])
    cfg.setdefault("makeopts_jobs", int(hw.get("cores") or 1))

    return cfg


def summarize_install_config(cfg: Dict[str, Any]) -> List[str]:
    lines = [
        f"Disk: {cfg['disk']}",
        f"Boot mode: {cfg['boot_mode']}",
        f"Layout: {cfg['layout']}",
        f"Root FS: {cfg['root_fs']}",
        f"Swap: {cfg.get('swap_gib', 0)} GiB",
        f"Init: {cfg['init_system']}",
        f"Stage3: {cfg['stage3_flavor']}",
        f"Kernel: {cfg['kernel_method']}",
        f"CPU optimization: -march={cfg['march']}",
        f"Timezone: {cfg['timezone']}",
        f"Hostname: {cfg['hostname']}",
        f"Bootloader: {cfg['bootloader']}",
    ]
    if cfg["layout"] == "custom":
        lines.insert(3, f"Partitions: root={cfg.get('root_part')} boot={cfg.get('boot_part')} swap={cfg.get('swap_part')}")
    return lines


def confirm_install(cfg: Dict[str, Any], prompter: Prompter) -> None:
    logger.info("Configuration summary:")
    for line in summarize_install_config(cfg):
        logger.info("  %s", line)
    if not (prompter.assume_yes or prompter.yes_no("Proceed with installation?", False)):
        raise Aborted("Installation aborted by user")
