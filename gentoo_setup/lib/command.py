from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return (self.stdout or "") + (self.stderr or "")


class CommandError(RuntimeError):
    def __init__(self, result: CmdResult):
        self.result = result
        super().__init__(f"Command failed ({result.returncode}): {_fmt_argv(result.argv)}\n{result.stderr}")


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def have_cmd(name: str) -> bool:
    return shutil.which(name) is not None


def _run_process(
    argv: list[str],
    *,
    env: Mapping[str, str],
    cwd: str | None,
    input_text: str | None,
    stream: bool,
    capture: bool,
) -> Tuple[int, str, str]:
    """Spawn argv and return (returncode, stdout, stderr)."""

    if not capture:
        p = subprocess.run(argv, input=input_text, text=True, cwd=cwd, env=dict(env))
        return p.returncode, "", ""

    if stream:
        # stderr folded into stdout so the log reads in order, like `2>&1 | tee -a`.
        lines: list[str] = []
        with subprocess.Popen(
            argv,
            stdin=subprocess.PIPE if input_text is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            cwd=cwd,
            env=dict(env),
        ) as proc:
            if input_text is not None and proc.stdin is not None:
                proc.stdin.write(input_text)
                proc.stdin.close()
            assert proc.stdout is not None
            for line in proc.stdout:
                lines.append(line)
                logger.info("| %s", line.rstrip("\n"))
            rc = proc.wait()
        return rc, "".join(lines), ""

    p = subprocess.run(
        argv,
        input=input_text,
        text=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        cwd=cwd,
        env=dict(env),
    )
    return p.returncode, p.stdout, p.stderr


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    dry_run: bool = False,
    stream: bool = False,
    capture: bool = True,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - Captures stdout/stderr for state recording if desired.
    - stream=True logs output line by line while the command runs (emerge).
    - capture=False hands the terminal to the command (emerge --ask).
    - dry_run logs but does not execute.
    """

    argv_list = list(argv)
    logger.info("CMD %s", _fmt_argv(argv_list))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    rc, out, err = _run_process(
        argv_list,
        env=dict(os.environ, **(env or {})),
        cwd=cwd,
        input_text=input_text,
        stream=stream,
        capture=capture,
    )

    if out and not stream:
        logger.debug("STDOUT %s", out.strip())
    if err:
        logger.debug("STDERR %s", err.strip())

    result = CmdResult(argv=argv_list, returncode=rc, stdout=out, stderr=err)
    if check and rc != 0:
        raise CommandError(result)
    return result
