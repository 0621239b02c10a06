import os
import stat

import pytest

from gentoo_setup import scheduler

SCRIPT = "/usr/local/bin/gentoo-system-update.sh"


@pytest.mark.parametrize(
    "choice, schedule",
    [("1", "0 2 28 * *"), ("2", "0 2 28 */3 *"), ("3", "0 2 28 */6 *"), ("4", "0 2 28 */12 *")],
)
def test_frequencies(choice, schedule):
    assert scheduler.schedule_for(choice) == schedule


def test_invalid_choice():
    with pytest.raises(ValueError, match="choose 1-4"):
        scheduler.schedule_for("5")


def test_merge_replaces_old_job_and_keeps_others():
    existing = f"MAILTO=root\n0 3 * * * /usr/bin/backup\n0 2 28 * * {SCRIPT}\n"
    merged = scheduler.merge_crontab(existing, "0 2 28 */3 *", SCRIPT)
    assert merged == f"MAILTO=root\n0 3 * * * /usr/bin/backup\n0 2 28 */3 * {SCRIPT}\n"


def test_merge_is_idempotent():
    once = scheduler.merge_crontab("", "0 2 28 * *", SCRIPT)
    assert scheduler.merge_crontab(once, "0 2 28 * *", SCRIPT) == once == f"0 2 28 * * {SCRIPT}\n"


def test_merge_remove():
    assert scheduler.merge_crontab(f"0 2 28 * * {SCRIPT}\n@daily x\n", None, SCRIPT) == "@daily x\n"


def test_update_script_wraps_the_updater(tmp_path, monkeypatch):
    monkeypatch.setattr(os, "chown", lambda *a, **k: None)
    path = tmp_path / "bin/gentoo-system-update.sh"
    scheduler.write_update_script(str(path))
    text = path.read_text()
    assert text.startswith("#!/bin/sh\n")
    assert "-m gentoo_setup.updater" in text
    assert stat.S_IMODE(path.stat().st_mode) == 0o755


def test_run_installs_crontab_over_stdin(runner, tmp_path, monkeypatch):
    monkeypatch.setattr(os, "chown", lambda *a, **k: None)
    runner.on("crontab -l", rc=1, err="no crontab for root")
    script = str(tmp_path / "update.sh")

    crontab = scheduler.run(choice="2", script=script)

    assert crontab == f"0 2 28 */3 * {script}\n"
    install = runner.calls[-1]
    assert install.argv == ["crontab", "-"]
    assert install.input_text == crontab


def test_run_remove(runner):
    runner.on("crontab -l", out=f"0 2 28 * * {SCRIPT}\n")
    assert scheduler.run(remove=True) == ""
    assert runner.calls[-1].input_text == ""


def test_interactive_choice(runner, tmp_path, monkeypatch, scripted):
    from gentoo_setup.prompts import Prompter

    monkeypatch.setattr(os, "chown", lambda *a, **k: None)
    scheduler.run(script=str(tmp_path / "u.sh"), prompter=Prompter(input_fn=scripted("4")))
    assert runner.calls[-1].input_text.startswith("0 2 28 */12 *")


def test_unprivileged_run_reexecs_before_opening_the_log(tmp_path, monkeypatch, isolated_logging):
    class Reexec(Exception):
        pass

    def fake_execvp(file, args):
        raise Reexec(args)

    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(scheduler, "is_root", lambda: False)
    monkeypatch.setattr(scheduler, "have_cmd", lambda name: True)
    monkeypatch.setattr(scheduler.os, "execvp", fake_execvp)
    log = tmp_path / "var/log/gentoo-updates.log"

    with pytest.raises(Reexec) as exc:
        scheduler.main(["--frequency", "2", "--log", str(log)])

    assert exc.value.args[0][:2] == ["sudo", "-E"]
    assert exc.value.args[0][-4:] == ["--frequency", "2", "--log", str(log)]
    assert not log.exists()
    assert list(tmp_path.iterdir()) == []
