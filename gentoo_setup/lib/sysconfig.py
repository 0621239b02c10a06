from __future__ import annotations


def render_hosts(hostname: str) -> str:
    return (
        "127.0.0.1    localhost\n"
        "::1          localhost ip6-localhost ip6-loopback\n"
        f"127.0.1.1    {hostname}\n"
    )


def hostname_file(init_system: str, hostname: str) -> tuple[str, str]:
    """(path, contents) of the hostname file for init_system."""

    if init_system == "systemd":
        return "/etc/hostname", f"{hostname}\n"
    return "/etc/conf.d/hostname", f'hostname="{hostname}"\n'


def locale_gen_line(locale: str) -> str:
    """en_US.UTF-8 -> 'en_US.UTF-8 UTF-8'"""

    charset = locale.split(".", 1)[1] if "." in locale else "UTF-8"
    return f"{locale} {charset}"


def eselect_locale_name(locale: str) -> str:
    """en_US.UTF-8 -> en_US.utf8 (the name `eselect locale list` shows)."""

    base, _, charset = locale.partition(".")
    if not charset:
        return base
    return f"{base}.{charset.lower().replace('-', '')}"


def ensure_line(text: str, line: str) -> str:
    lines = text.splitlines()
    if line in (ln.strip() for ln in lines):
        return text
    if text and not text.endswith("\n"):
        text += "\n"
    return text + line + "\n"


def render_resolv_conf(servers) -> str:
    return "".join(f"nameserver {s}\n" for s in servers)
