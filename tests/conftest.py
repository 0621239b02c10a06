from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import pytest

from gentoo_setup.lib import command


@dataclass
class Call:
    argv: List[str]
    input_text: Optional[str]
    stream: bool
    capture: bool

    @property
    def line(self) -> str:
        return " ".join(self.argv)


@dataclass
class Rule:
    needle: str
    rc: int = 0
    out: str = ""
    err: str = ""
    times: Optional[int] = None
    effect: Optional[Callable[[List[str]], None]] = None


@dataclass
class FakeRunner:
    """Stands in for the process spawner; records every argv."""

    calls: List[Call] = field(default_factory=list)
    rules: List[Rule] = field(default_factory=list)

    def on(self, needle: str, *, rc: int = 0, out: str = "", err: str = "", times=None, effect=None) -> None:
        self.rules.append(Rule(needle, rc, out, err, times, effect))

    def __call__(self, argv, *, env, cwd, input_text, stream, capture):
        call = Call(list(argv), input_text, stream, capture)
        self.calls.append(call)
        for rule in self.rules:
            if rule.needle in call.line and (rule.times is None or rule.times > 0):
                if rule.times is not None:
                    rule.times -= 1
                if rule.effect is not None:
                    rule.effect(call.argv)
                return rule.rc, rule.out, rule.err
        return 0, "", ""

    @property
    def lines(self) -> List[str]:
        return [c.line for c in self.calls]

    def ran(self, needle: str) -> bool:
        return any(needle in line for line in self.lines)


@pytest.fixture
def runner(monkeypatch) -> FakeRunner:
    fake = FakeRunner()
    monkeypatch.setattr(command, "_run_process", fake)
    return fake


@pytest.fixture
def isolated_logging():
    """Undo configure_logging() so each test gets fresh handlers."""

    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield
    for h in list(root.handlers):
        if h not in saved_handlers:
            root.removeHandler(h)
            h.close()
    root.setLevel(saved_level)
    for attr in ("_gentoo_setup_configured", "_gentoo_setup_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)


class ScriptedInput:
    """input()/getpass() replacement that replays answers in order."""

    def __init__(self, *answers: str):
        self.answers = list(answers)
        self.prompts: List[str] = []

    def __call__(self, prompt: str = "") -> str:
        self.prompts.append(prompt)
        if not self.answers:
            raise AssertionError(f"unexpected prompt: {prompt!r}")
        return self.answers.pop(0)


@pytest.fixture
def scripted():
    return ScriptedInput
