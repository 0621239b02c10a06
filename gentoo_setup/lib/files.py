from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def copy_tree(src: str, dst: str, *, dry_run: bool = False) -> None:
    """Recursive copy preserving modes and times (rsync -a src/ dst/)."""

    s = Path(src)
    d = Path(dst)
    if not s.exists():
        raise FileNotFoundError(src)

    if dry_run:
        logger.info("Would copy tree %s -> %s", str(s), str(d))
        return

    d.mkdir(parents=True, exist_ok=True)
    for item in s.rglob("*"):
        rel = item.relative_to(s)
        out = d / rel
        if item.is_dir():
            out.mkdir(parents=True, exist_ok=True)
        else:
            out.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(item, out)


def install_file(src: str, dest_dir: str, *, mode: int = 0o644, dry_run: bool = False) -> str:
    """install -m MODE src dest_dir/"""

    out = Path(dest_dir) / Path(src).name
    if dry_run:
        logger.info("Would install %s -> %s", src, str(out))
        return str(out)
    out.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(src, out)
    out.chmod(mode)
    return str(out)


def chmod_tree(root: str, *, dir_mode: int = 0o755, file_mode: int = 0o644) -> None:
    for dirpath, dirnames, filenames in os.walk(root):
        os.chmod(dirpath, dir_mode)
        for name in filenames:
            os.chmod(os.path.join(dirpath, name), file_mode)


def chown_root(path: str, *, recursive: bool = False) -> None:
    os.chown(path, 0, 0)
    if recursive and os.path.isdir(path):
        for dirpath, dirnames, filenames in os.walk(path):
            for name in dirnames + filenames:
                os.chown(os.path.join(dirpath, name), 0, 0, follow_symlinks=False)
