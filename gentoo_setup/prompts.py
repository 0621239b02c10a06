"""Interactive question helpers shared by the installer and the desktop wizard.

Every question has an optional default shown in brackets; pressing Enter takes
it. With ``assume_yes`` (the ``--yes`` flag or ``YES_TO_ALL``) questions that
have a default are answered without asking. Questions with no default, and the
destructive-action confirmation word, are always asked.
"""

from __future__ import annotations

import getpass
import logging
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)


class Aborted(RuntimeError):
    """The user declined to continue."""


Validator = Callable[[str], Optional[str]]


class Prompter:
    def __init__(
        self,
        *,
        input_fn: Callable[[str], str] = input,
        password_fn: Callable[[str], str] = getpass.getpass,
        assume_yes: bool = False,
    ) -> None:
        self._input = input_fn
        self._password = password_fn
        self.assume_yes = assume_yes

    def _ask(self, prompt: str) -> str:
        return self._input(prompt).strip()

    def yes_no(self, prompt: str, default: bool = True) -> bool:
        if self.assume_yes:
            return default
        shown = "y" if default else "n"
        while True:
            ans = self._ask(f"{prompt} [y/n] (default: {shown}): ").lower() or shown
            if ans in {"y", "yes"}:
                return True
            if ans in {"n", "no"}:
                return False
            print("Please answer y or n.")

    def choice(self, prompt: str, default: str, options: Sequence[str]) -> str:
        if self.assume_yes:
            return default
        joined = "/".join(options)
        while True:
            ans = self._ask(f"{prompt} [{joined}] (default: {default}): ") or default
            for opt in options:
                if ans.lower() == opt.lower():
                    return opt
            print(f"Invalid choice: {ans}")

    def text(self, prompt: str, default: Optional[str] = None, validate: Optional[Validator] = None) -> str:
        """Ask for free text.

        ``validate`` returns an error message for a rejected value, or None.
        """

        if self.assume_yes and default:
            return default
        while True:
            if default:
                ans = self._ask(f"{prompt} [{default}]: ") or default
            else:
                ans = self._ask(f"{prompt}: ")
            if not ans:
                continue
            if validate is not None:
                err = validate(ans)
                if err:
                    logger.warning("%s", err)
                    continue
            return ans

    def password(self, prompt: str) -> str:
        while True:
            first = self._password(f"{prompt}: ")
            second = self._password(f"Confirm {prompt[:1].lower()}{prompt[1:]}: ")
            if first != second:
                logger.warning("Passwords do not match. Try again.")
                continue
            if not first:
                logger.warning("Password cannot be empty")
                continue
            return first

    def confirm_word(self, prompt: str, word: str) -> None:
        ans = self._ask(f"{prompt} Type '{word}' to confirm: ")
        if ans != word:
            raise Aborted("Installation aborted")
