from __future__ import annotations

import hashlib
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .command import run_cmd

logger = logging.getLogger(__name__)

DEFAULT_MIRROR = "https://distfiles.gentoo.org"

STAGE3_TABLE = {
    ("minimal", "openrc"): ("current-stage3-amd64-openrc", "latest-stage3-amd64-openrc.txt"),
    ("minimal", "systemd"): ("current-stage3-amd64-systemd", "latest-stage3-amd64-systemd.txt"),
    ("desktop", "openrc"): ("current-stage3-amd64-desktop-openrc", "latest-stage3-amd64-desktop-openrc.txt"),
    ("desktop", "systemd"): ("current-stage3-amd64-desktop-systemd", "latest-stage3-amd64-desktop-systemd.txt"),
}

_LATEST_RE = re.compile(r"^(\S+/)?(stage3-\S+\.tar\.(?:xz|bz2))\s+\d+\s*$")
_HASH_RE = re.compile(r"^[0-9a-f]{32,}\s+\S+")


@dataclass(frozen=True)
class Stage3Source:
    base_url: str
    directory: str
    latest_file: str

    @property
    def latest_url(self) -> str:
        return f"{self.base_url}/{self.latest_file}"

    def tarball_url(self, rel_path: str) -> str:
        return f"{self.base_url}/{rel_path}"


def stage3_source(flavor: str, init_system: str, mirror: str = DEFAULT_MIRROR) -> Stage3Source:
    try:
        directory, latest = STAGE3_TABLE[(flavor, init_system)]
    except KeyError:
        raise ValueError(f"Unsupported stage3 combination: {flavor}_{init_system}") from None
    return Stage3Source(
        base_url=f"{mirror.rstrip('/')}/releases/amd64/autobuilds",
        directory=directory,
        latest_file=latest,
    )


def parse_latest(text: str) -> str:
    """Return the relative tarball path from a latest-stage3-*.txt listing."""

    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or line.startswith("-----"):
            continue
        m = _LATEST_RE.match(line)
        if m:
            return (m.group(1) or "") + m.group(2)
    raise RuntimeError("No stage3 tarball listed in latest file")


def parse_digests(text: str, filename: str) -> Optional[str]:
    """Return the SHA512 hash for filename from a .DIGESTS file, if listed."""

    lines = text.splitlines()
    for i, line in enumerate(lines):
        if not line.strip().upper().startswith("# SHA512 HASH"):
            continue
        for candidate in lines[i + 1 : i + 3]:
            candidate = candidate.strip()
            if _HASH_RE.match(candidate) and candidate.split()[1] == filename:
                return candidate.split()[0]
    return None


def sha512_file(path: str) -> str:
    h = hashlib.sha512()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def download(url: str, dest: str, *, dry_run: bool = False) -> None:
    run_cmd(["curl", "-f", "-L", "-o", dest, url], dry_run=dry_run)


def fetch_stage3(source: Stage3Source, work_dir: str, *, dry_run: bool = False) -> str:
    """Download the newest stage3 for source and its DIGESTS; verify SHA512. Returns the local path."""

    Path(work_dir).mkdir(parents=True, exist_ok=True)

    latest_path = os.path.join(work_dir, source.latest_file)
    download(source.latest_url, latest_path, dry_run=dry_run)
    if dry_run:
        rel = f"{source.directory}/stage3-dry-run.tar.xz"
    else:
        rel = parse_latest(Path(latest_path).read_text(encoding="utf-8", errors="ignore"))

    filename = rel.rsplit("/", 1)[-1]
    tarball = os.path.join(work_dir, filename)
    url = source.tarball_url(rel)

    logger.info("Downloading %s", filename)
    download(url, tarball, dry_run=dry_run)
    download(f"{url}.DIGESTS", f"{tarball}.DIGESTS", dry_run=dry_run)

    if dry_run:
        return tarball

    logger.info("Verifying checksum...")
    expected = parse_digests(Path(f"{tarball}.DIGESTS").read_text(encoding="utf-8", errors="ignore"), filename)
    actual = sha512_file(tarball)
    if not expected or expected.lower() != actual:
        raise RuntimeError(f"Checksum verification failed! Expected: {expected}, Got: {actual}")

    logger.info("Stage3 verified successfully")
    return tarball


def extract_stage3(tarball: str, target_root: str, *, dry_run: bool = False) -> None:
    old = os.umask(0o022)
    try:
        run_cmd(
            ["tar", "xpf", tarball, "-C", target_root, "--xattrs-include=*.*", "--numeric-owner"],
            dry_run=dry_run,
        )
    finally:
        os.umask(old)
    logger.info("Stage3 extracted to %s", target_root)
