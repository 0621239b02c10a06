import stat

import pytest

from gentoo_setup import desktop, desktop_steps
from gentoo_setup.desktop_config import DesktopConfig, collect_desktop_config, summarize_desktop_config, user_exists
from gentoo_setup.desktop_steps import (
    DOAS_RULE,
    DesktopCtx,
    configure_doas,
    configure_sudo,
    configure_xlibre_use_flags,
    desktop_packages,
    repository_names,
    step_10_users,
    step_40_display_server,
    step_60_display_manager,
)
from gentoo_setup.prompts import Prompter
from gentoo_setup.state_store import ensure_defaults


@pytest.fixture
def no_emerge(monkeypatch):
    installed = []
    monkeypatch.setattr(DesktopCtx, "install", lambda self, pkgs: installed.append(list(pkgs)))
    return installed


def _ctx(tmp_path, secrets=None, **raw):
    return DesktopCtx(cfg=DesktopConfig(raw=raw), secrets=secrets or {}, dry_run=False, root=str(tmp_path))


def _inner(runner, root):
    """Commands as run inside root."""

    prefix = ["chroot", str(root), "/bin/bash", "-lc"]
    return [c.argv[-1] if c.argv[:4] == prefix else c.line for c in runner.calls]


def test_wizard_collects_everything_upfront(scripted):
    inputs = scripted("", "alice", "sudo", "", "user", "xlibre", "kde", "full", "", "n")
    cfg, secrets = {}, {}
    dc = collect_desktop_config(
        cfg, secrets, Prompter(input_fn=inputs, password_fn=scripted("pw", "pw")), exists=lambda n: False
    )
    assert dc.user_action == "create"
    assert dc.username == "alice"
    assert secrets["user_password"] == "pw"
    assert dc.privilege == "sudo"
    assert dc.flatpak and dc.flatpak_scope == "user"
    assert dc.display_server == "xlibre" and dc.xlibre
    assert dc.desktop == "kde" and dc.desktop_profile == "full"
    assert dc.display_manager == "sddm"
    assert dc.autostart is False
    assert "user_password" not in cfg


def test_existing_user_must_be_renamed(scripted):
    inputs = scripted("create", "root", "bob")
    cfg = {"privilege": "skip", "flatpak": "no", "display_server": "skip", "desktop": "CLI", "display_manager": "None"}
    dc = collect_desktop_config(
        cfg, {}, Prompter(input_fn=inputs, password_fn=scripted("x", "x")), exists=lambda n: n == "root"
    )
    assert dc.username == "bob"
    assert dc.autostart is False


def test_update_of_missing_user_degrades_to_skip(scripted):
    cfg = {"user_action": "update", "username": "ghost"}
    dc = collect_desktop_config(cfg, {}, Prompter(input_fn=scripted(), assume_yes=True), exists=lambda n: False)
    assert dc.user_action == "skip"
    assert dc.username == ""
    assert dc.privilege == "doas"
    assert dc.display_manager == "sddm"
    assert dc.autostart is True


def test_invalid_scripted_answer(scripted):
    with pytest.raises(ValueError, match="display_server"):
        collect_desktop_config(
            {"user_action": "skip", "privilege": "skip", "flatpak": "no", "display_server": "mir"},
            {},
            Prompter(input_fn=scripted()),
        )


def test_summary_lines():
    dc = DesktopConfig(
        raw={
            "user_action": "create",
            "username": "alice",
            "privilege": "doas",
            "flatpak": "yes",
            "flatpak_scope": "system",
            "display_server": "Xorg",
            "desktop": "KDE",
            "desktop_profile": "minimal",
            "display_manager": "SDDM",
            "autostart": True,
        }
    )
    lines = summarize_desktop_config(dc)
    assert lines[0].endswith("create (alice)")
    assert lines[2].endswith("yes (system)")
    assert lines[4].endswith("KDE (minimal)")
    assert lines[5].endswith("SDDM (autostart: yes)")


@pytest.mark.parametrize(
    "de, profile, pkgs",
    [
        ("KDE", "minimal", ["kde-plasma/plasma-meta"]),
        ("kde", "full", ["kde-plasma/kde-meta"]),
        ("Gnome", "minimal", ["gnome-base/gnome-light"]),
        ("gnome", "full", ["gnome-base/gnome"]),
        ("MATE", "", ["mate-base/mate"]),
        ("LXDE", "full", ["lxde-base/lxde-meta"]),
        ("CLI", "", []),
    ],
)
def test_desktop_packages(de, profile, pkgs):
    assert desktop_packages(de, profile) == pkgs


def test_repository_names():
    listing = "Available repositories:\n  [1]   gentoo # (https://gentoo.org/)\n  [2]   x11libre # (...)\n"
    assert "x11libre" in repository_names(listing)
    assert "gentoo" in repository_names(listing)


def test_create_user(runner, tmp_path):
    state = ensure_defaults({}, tool="gentoo-setup-desktop")
    ctx = _ctx(tmp_path, secrets={"user_password": "pw"}, user_action="create", username="alice")
    step_10_users(ctx=ctx, state=state, force=False)
    assert _inner(runner, tmp_path)[0] == "useradd -m -G wheel,audio,video,usb,portage -s /bin/bash alice"
    assert runner.calls[1].input_text == "alice:pw\n"
    assert state["execution"]["completed_steps"] == ["10_users"]

    step_10_users(ctx=ctx, state=state, force=False)
    assert len(runner.calls) == 2


def test_doas_created_with_restricted_mode(tmp_path, no_emerge):
    configure_doas(_ctx(tmp_path))
    conf = tmp_path / "etc/doas.conf"
    assert conf.read_text() == DOAS_RULE + "\n"
    assert stat.S_IMODE(conf.stat().st_mode) == 0o440
    assert no_emerge == [["app-admin/doas"]]


def test_doas_existing_conf_backed_up_and_appended(tmp_path, no_emerge):
    conf = tmp_path / "etc/doas.conf"
    conf.parent.mkdir(parents=True)
    conf.write_text("permit nopass root\n")
    configure_doas(_ctx(tmp_path))
    assert conf.read_text() == "permit nopass root\n" + DOAS_RULE + "\n"
    assert (tmp_path / "etc/doas.conf.bak").read_text() == "permit nopass root\n"

    configure_doas(_ctx(tmp_path))
    assert conf.read_text().count(DOAS_RULE) == 1


def test_sudo_wheel_dropin(runner, tmp_path, no_emerge):
    (tmp_path / "usr/sbin").mkdir(parents=True)
    (tmp_path / "usr/sbin/visudo").write_text("")
    configure_sudo(_ctx(tmp_path))
    dropin = tmp_path / "etc/sudoers.d/10-wheel"
    assert dropin.read_text() == "%wheel ALL=(ALL:ALL) ALL\n"
    assert stat.S_IMODE(dropin.stat().st_mode) == 0o440
    assert _inner(runner, tmp_path) == ["visudo -c"]


def test_xlibre_use_flags(tmp_path):
    use = tmp_path / "etc/portage/package.use"
    use.mkdir(parents=True)
    (use / "wayland-opengl").write_text("*/*::gentoo wayland opengl\n")
    (use / "zz-autounmask").write_text("dev-qt/qtbase:6 -opengl\nmedia-libs/mesa vulkan\n")

    configure_xlibre_use_flags(_ctx(tmp_path, display_server="Xlibre"))

    assert not (use / "wayland-opengl").exists()
    assert (use / "zz-autounmask").read_text() == "media-libs/mesa vulkan\n"
    assert "*/*::gentoo -wayland X opengl" in (use / "zzz-xlibre").read_text()


def test_xlibre_overlay_manual_fallback(runner, tmp_path, no_emerge):
    runner.on("eselect repository add", rc=1)
    ctx = _ctx(tmp_path, display_server="Xlibre", desktop="CLI", display_manager="None")
    state = ensure_defaults({}, tool="gentoo-setup-desktop")

    step_40_display_server(ctx=ctx, state=state, force=False)

    inner = _inner(runner, tmp_path)
    assert f"git clone {desktop_steps.XLIBRE_REPO_URL} /var/db/repos/xlibre" in inner
    assert "location = /var/db/repos/xlibre" in (tmp_path / "etc/portage/repos.conf/xlibre.conf").read_text()
    assert inner[-1] == "emaint sync -r xlibre"
    assert no_emerge[-1] == ["x11-base/xlibre-server"]


def test_sddm_display_manager(runner, tmp_path, no_emerge):
    ctx = _ctx(tmp_path, display_server="Xorg", display_manager="SDDM", autostart=True)
    state = ensure_defaults({}, tool="gentoo-setup-desktop")

    step_60_display_manager(ctx=ctx, state=state, force=False)

    init = tmp_path / "etc/init.d/sddm"
    assert init.read_text().startswith("#!/sbin/openrc-run\n")
    assert stat.S_IMODE(init.stat().st_mode) == 0o755
    assert (tmp_path / "etc/conf.d/xdm").read_text() == 'DISPLAYMANAGER="sddm"\n'
    assert _inner(runner, tmp_path) == ["rc-update add xdm default", "rc-update add sddm default"]


def test_lightdm_with_xlibre_skips_xdm(runner, tmp_path, no_emerge):
    ctx = _ctx(tmp_path, display_server="Xlibre", display_manager="LightDM", autostart=False)
    state = ensure_defaults({}, tool="gentoo-setup-desktop")

    step_60_display_manager(ctx=ctx, state=state, force=False)

    assert no_emerge == [["x11-misc/lightdm", "x11-misc/lightdm-gtk-greeter"]]
    assert "greeter-session=lightdm-gtk-greeter" in (tmp_path / "etc/lightdm/lightdm.conf.d/50-greeter.conf").read_text()
    assert not (tmp_path / "etc/conf.d/xdm").exists()
    assert runner.calls == []


def test_declining_the_summary_changes_nothing(runner, tmp_path, scripted, isolated_logging):
    answers = tmp_path / "answers.yaml"
    answers.write_text(
        "user_action: skip\nprivilege: skip\nflatpak: 'no'\ndisplay_server: skip\ndesktop: CLI\ndisplay_manager: None\n"
    )
    state = desktop.run(
        state_path=str(tmp_path / "state.json"),
        log_path=str(tmp_path / "desktop.log"),
        answers_path=str(answers),
        dry_run=True,
        root=str(tmp_path),
        prompter=Prompter(input_fn=scripted("n")),
    )
    assert state["execution"]["completed_steps"] == []
    assert runner.calls == []


def test_dry_run_end_to_end(runner, tmp_path, scripted, isolated_logging):
    answers = tmp_path / "answers.yaml"
    answers.write_text(
        "user_action: skip\nprivilege: doas\nflatpak: 'no'\ndisplay_server: Xorg\n"
        "desktop: MATE\ndisplay_manager: GDM\nautostart: true\n"
    )
    state = desktop.run(
        state_path=str(tmp_path / "state.json"),
        log_path=str(tmp_path / "desktop.log"),
        answers_path=str(answers),
        dry_run=True,
        root=str(tmp_path),
        prompter=Prompter(input_fn=scripted(), assume_yes=True),
    )
    assert state["execution"]["completed_steps"] == [
        "10_users",
        "20_privilege",
        "30_flatpak",
        "40_display_server",
        "50_desktop",
        "60_display_manager",
    ]
    assert runner.calls == []
    assert not (tmp_path / "etc/doas.conf").exists()


WIZARD = ("skip", "skip", "no", "skip", "CLI", "None")


def _run(tmp_path, scripted, *answers):
    inputs = scripted(*answers)
    state = desktop.run(
        state_path=str(tmp_path / "state.json"),
        log_path=str(tmp_path / "desktop.log"),
        dry_run=True,
        root=str(tmp_path),
        prompter=Prompter(input_fn=inputs),
    )
    return state, inputs


def test_second_run_asks_again_and_runs_every_step(runner, tmp_path, scripted, isolated_logging):
    _run(tmp_path, scripted, *WIZARD, "y")
    state, inputs = _run(tmp_path, scripted, "skip", "doas", "no", "skip", "CLI", "None", "y")

    assert len(inputs.prompts) == 7
    assert state["config"]["privilege"] == "doas"
    assert len(state["execution"]["completed_steps"]) == 6
    assert "already completed" not in (tmp_path / "desktop.log").read_text()


def _interrupt(tmp_path, scripted, monkeypatch):
    def broken(*, ctx, state, force):
        raise RuntimeError("emerge failed")

    monkeypatch.setattr(desktop, "ALL_STEPS", [step_10_users, desktop_steps.step_20_privilege, broken])
    with pytest.raises(RuntimeError, match="emerge failed"):
        _run(tmp_path, scripted, *WIZARD, "y")
    monkeypatch.setattr(desktop, "ALL_STEPS", desktop_steps.ALL_STEPS)


def test_interrupted_run_resumes_with_same_answers(runner, tmp_path, scripted, monkeypatch, isolated_logging):
    _interrupt(tmp_path, scripted, monkeypatch)

    state, _ = _run(tmp_path, scripted, *WIZARD, "y")

    log = (tmp_path / "desktop.log").read_text()
    assert "Resuming interrupted run at broken" in log
    assert "skip 10_users (already completed)" in log
    assert "skip 20_privilege (already completed)" in log
    assert state["execution"]["current_step"] is None
    assert len(state["execution"]["completed_steps"]) == 6


def test_interrupted_run_with_new_answers_starts_over(runner, tmp_path, scripted, monkeypatch, isolated_logging):
    _interrupt(tmp_path, scripted, monkeypatch)

    _run(tmp_path, scripted, "skip", "sudo", "no", "skip", "CLI", "None", "y")

    assert "already completed" not in (tmp_path / "desktop.log").read_text()


def test_live_system_commands_are_not_chrooted(runner, monkeypatch):
    monkeypatch.setattr(DesktopCtx, "install", lambda self, pkgs: None)
    runner.on("rc-update show", out="  dbus | default\n")
    ctx = DesktopCtx(cfg=DesktopConfig(raw={"flatpak": "yes", "flatpak_scope": "user"}), secrets={}, dry_run=False)
    state = ensure_defaults({}, tool="gentoo-setup-desktop")

    desktop_steps.step_30_flatpak(ctx=ctx, state=state, force=False)

    assert runner.lines == [
        "rc-update show",
        "rc-service dbus status",
        "flatpak remotes --user",
        f"flatpak remote-add --if-not-exists --user flathub {desktop_steps.FLATHUB_URL}",
    ]


def test_flatpak_in_mounted_root_does_not_start_dbus(runner, tmp_path, no_emerge):
    runner.on("flatpak remotes", out="flathub\tsystem\n")
    ctx = _ctx(tmp_path, flatpak="yes", flatpak_scope="system")
    state = ensure_defaults({}, tool="gentoo-setup-desktop")

    desktop_steps.step_30_flatpak(ctx=ctx, state=state, force=False)

    assert _inner(runner, tmp_path) == ["rc-update add dbus default", "flatpak remotes --system"]


def test_user_lookup_in_mounted_root(tmp_path):
    (tmp_path / "etc").mkdir()
    (tmp_path / "etc/passwd").write_text("root:x:0:0::/root:/bin/bash\nalice:x:1000:1000::/home/alice:/bin/bash\n")
    assert user_exists("alice", str(tmp_path))
    assert not user_exists("bob", str(tmp_path))
    assert not user_exists("alice", str(tmp_path / "missing"))
