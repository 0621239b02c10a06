import pytest

from gentoo_setup.prompts import Aborted, Prompter


def test_yes_no_reasks_until_valid(scripted):
    answers = scripted("maybe", "YES")
    assert Prompter(input_fn=answers).yes_no("Continue?", False) is True
    assert len(answers.prompts) == 2


def test_yes_no_empty_takes_default(scripted):
    assert Prompter(input_fn=scripted("")).yes_no("Continue?", False) is False


def test_choice_returns_canonical_spelling(scripted):
    p = Prompter(input_fn=scripted("wrong", "kde"))
    assert p.choice("Desktop", "CLI", ["CLI", "KDE", "Gnome"]) == "KDE"


def test_text_validator_and_default(scripted):
    p = Prompter(input_fn=scripted("/dev/nope", "/dev/sda"))
    value = p.text("Disk", validate=lambda v: None if v == "/dev/sda" else "bad disk")
    assert value == "/dev/sda"
    assert Prompter(input_fn=scripted("")).text("Hostname", "gentoo") == "gentoo"


def test_text_without_default_reasks_on_empty(scripted):
    answers = scripted("", "alice")
    assert Prompter(input_fn=answers).text("Username") == "alice"


def test_password_must_match_and_be_non_empty(scripted):
    pw = scripted("a", "b", "", "", "s3cret", "s3cret")
    assert Prompter(password_fn=pw).password("Root password") == "s3cret"
    assert pw.prompts[1] == "Confirm root password: "


def test_assume_yes_uses_defaults_but_still_asks_without_one(scripted):
    answers = scripted("alice")
    p = Prompter(input_fn=answers, assume_yes=True)
    assert p.yes_no("Proceed?", True) is True
    assert p.choice("Init", "openrc", ["openrc", "systemd"]) == "openrc"
    assert p.text("Timezone", "UTC") == "UTC"
    assert p.text("Username") == "alice"
    assert len(answers.prompts) == 1


def test_confirm_word_is_never_assumed(scripted):
    p = Prompter(input_fn=scripted("yes"), assume_yes=True)
    with pytest.raises(Aborted):
        p.confirm_word("ALL DATA WILL BE DESTROYED!", "WIPE")
    Prompter(input_fn=scripted("WIPE")).confirm_word("ALL DATA WILL BE DESTROYED!", "WIPE")
