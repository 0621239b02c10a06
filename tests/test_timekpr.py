import os
import stat

from gentoo_setup import timekpr
from gentoo_setup.prompts import Prompter

MANIFEST = """
# comment
resource/server/timekpr.conf    etc/timekpr
  bin/timekprd   usr/bin
resource/locale    usr/share/locale
missing/file  usr/share/timekpr
onlysource
"""


def test_parse_install_manifest():
    entries = timekpr.parse_install_manifest(MANIFEST)
    assert [(e.src, e.dest) for e in entries] == [
        ("resource/server/timekpr.conf", "etc/timekpr"),
        ("bin/timekprd", "usr/bin"),
        ("resource/locale", "usr/share/locale"),
        ("missing/file", "usr/share/timekpr"),
    ]


def test_install_files(tmp_path):
    repo = tmp_path / "src"
    (repo / "resource/server").mkdir(parents=True)
    (repo / "resource/server/timekpr.conf").write_text("[DOCUMENTATION]\n")
    (repo / "bin").mkdir()
    (repo / "bin/timekprd").write_text("#!/usr/bin/python3\n")
    (repo / "resource/locale/de/LC_MESSAGES").mkdir(parents=True)
    (repo / "resource/locale/de/LC_MESSAGES/timekpr.mo").write_bytes(b"\x00")
    dest = tmp_path / "root"

    installed = timekpr.install_files(str(repo), timekpr.parse_install_manifest(MANIFEST), dest_root=str(dest))

    assert (dest / "etc/timekpr/timekpr.conf").read_text() == "[DOCUMENTATION]\n"
    assert stat.S_IMODE((dest / "usr/bin/timekprd").stat().st_mode) == 0o644
    assert (dest / "usr/share/locale/locale/de/LC_MESSAGES/timekpr.mo").exists()
    assert len(installed) == 3


def test_set_permissions(tmp_path, monkeypatch):
    monkeypatch.setattr(timekpr, "chown_root", lambda *a, **k: None)
    (tmp_path / "usr/bin").mkdir(parents=True)
    exe = tmp_path / "usr/bin/timekpra"
    exe.write_text("")
    exe.chmod(0o600)
    conf = tmp_path / "etc/timekpr"
    conf.mkdir(parents=True)
    (conf / "timekpr.conf").write_text("")
    (conf / "timekpr.conf").chmod(0o600)

    timekpr.set_permissions(root=str(tmp_path))

    assert stat.S_IMODE(exe.stat().st_mode) == 0o755
    assert stat.S_IMODE((conf / "timekpr.conf").stat().st_mode) == 0o644
    assert (tmp_path / "var/lib/timekpr/config").is_dir()
    assert (tmp_path / "var/lib/timekpr/work").is_dir()


def test_deps_include_available_optional_atoms(runner):
    runner.on("emerge --pretend --quiet dev-libs/libayatana-appindicator", rc=1)
    runner.on("emerge --noreplace", rc=1)
    timekpr.install_deps(auto=True)
    install = runner.calls[-1]
    assert install.argv[:3] == ["emerge", "--noreplace", "--quiet"]
    assert "dev-libs/libappindicator:3" in install.argv
    assert "dev-libs/libayatana-appindicator" not in install.argv


def test_interactive_deps_hand_over_the_terminal(runner):
    timekpr.install_deps(auto=False)
    install = runner.calls[-1]
    assert "--ask" in install.argv
    assert install.capture is False


def test_fresh_clone(runner, tmp_path):
    timekpr.clone_repo(timekpr.REPO_URL_DEFAULT, "v0.5.1", str(tmp_path / "src"))
    assert runner.lines == [f"git clone --depth 1 --branch v0.5.1 {timekpr.REPO_URL_DEFAULT} {tmp_path / 'src'}"]


def test_update_falls_back_to_plain_ref(runner, tmp_path):
    repo = tmp_path / "src"
    (repo / ".git").mkdir(parents=True)
    runner.on("reset --hard origin/v0.5.1", rc=128)
    timekpr.clone_repo(timekpr.REPO_URL_DEFAULT, "v0.5.1", str(repo))
    assert [line.split(f"{repo} ")[1] for line in runner.lines] == [
        "fetch --all",
        "checkout v0.5.1",
        "reset --hard origin/v0.5.1",
        "reset --hard v0.5.1",
    ]


def test_service_enable_only_with_yes(runner, monkeypatch):
    monkeypatch.setattr(timekpr, "have_cmd", lambda name: True)
    timekpr.configure_service(auto=True, prompter=Prompter())
    assert runner.lines == ["systemctl enable timekpr.service"]


def test_service_interactive_enable_and_start(runner, monkeypatch, scripted):
    monkeypatch.setattr(timekpr, "have_cmd", lambda name: True)
    timekpr.configure_service(auto=False, prompter=Prompter(input_fn=scripted("")))
    assert runner.lines == ["systemctl enable timekpr.service", "systemctl start timekpr.service"]


def test_service_without_systemd(runner, monkeypatch):
    monkeypatch.setattr(timekpr, "have_cmd", lambda name: False)
    timekpr.configure_service(auto=True, prompter=Prompter())
    assert runner.calls == []


def test_work_dir_under_tmpdir(monkeypatch, tmp_path):
    monkeypatch.setattr(timekpr.tempfile, "gettempdir", lambda: str(tmp_path))
    assert timekpr.work_base() == os.path.join(str(tmp_path), "timekpr-next-gentoo-install")
