import pytest

from gentoo_setup.lib import hwdetect
from gentoo_setup.lib.firmware import detect_boot_mode


@pytest.mark.parametrize(
    "mem, swap",
    [(1, 2), (2, 4), (4, 6), (5, 7), (8, 12), (16, 16), (64, 32), (128, 32), (48, 32)],
)
def test_auto_swap(mem, swap):
    assert hwdetect.auto_swap_gib(mem) == swap


def test_mem_total_rounds_up(tmp_path):
    p = tmp_path / "meminfo"
    p.write_text("MemTotal:       16318460 kB\nMemFree:  1 kB\n")
    assert hwdetect.mem_total_gib(str(p)) == 16


def test_mem_total_unreadable_is_zero(tmp_path):
    assert hwdetect.mem_total_gib(str(tmp_path / "missing")) == 0


def test_default_disk_prefers_first_block_device(monkeypatch):
    monkeypatch.setattr(hwdetect, "is_block_device", lambda p: p in {"/dev/sda", "/dev/vda"})
    assert hwdetect.default_disk() == "/dev/sda"
    monkeypatch.setattr(hwdetect, "is_block_device", lambda p: False)
    assert hwdetect.default_disk() == ""


def test_list_disks_drops_loop_and_rom(runner):
    runner.on("lsblk", out="NAME SIZE TYPE MODEL\nsda 500G disk Samsung\nloop0 1G loop\nsr0 1G rom DVD\n")
    assert hwdetect.list_disks() == ["NAME SIZE TYPE MODEL", "sda 500G disk Samsung"]


def test_boot_mode(tmp_path):
    assert detect_boot_mode(str(tmp_path)) == "UEFI"
    assert detect_boot_mode(str(tmp_path / "nope")) == "BIOS"
