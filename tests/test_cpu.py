import pytest

from gentoo_setup.lib.cpu import march_for_cpu, parse_cpuinfo, read_cpuinfo


@pytest.mark.parametrize(
    "vendor, model, expected",
    [
        ("AuthenticAMD", "AMD Ryzen 9 7000 Series", "znver4"),
        ("AuthenticAMD", "AMD EPYC 9654 (Genoa)", "znver4"),
        ("AuthenticAMD", "AMD Ryzen 7 5000 Series", "znver3"),
        ("AuthenticAMD", "AMD Ryzen 5 3000 Series", "znver2"),
        ("AuthenticAMD", "AMD Ryzen Threadripper 1000 Series", "znver1"),
        ("AuthenticAMD", "AMD Athlon 64 X2", "x86-64"),
        ("GenuineIntel", "13th Gen Intel(R) Core(TM) i7-13700K", "raptorlake"),
        ("GenuineIntel", "12th Gen Intel(R) Core(TM) i5-12400", "alderlake"),
        ("GenuineIntel", "Intel(R) Core(TM) i7-8700K (8th Gen)", "coffeelake"),
        ("GenuineIntel", "Intel Core i7 Haswell", "haswell"),
        ("GenuineIntel", "Intel(R) Xeon(R) CPU E5-2670", "x86-64"),
        ("CentaurHauls", "VIA Nano", "x86-64"),
    ],
)
def test_march_table(vendor, model, expected):
    assert march_for_cpu(vendor, model) == expected


def test_matching_ignores_case():
    assert march_for_cpu("GenuineIntel", "intel core ALDER LAKE") == "alderlake"


def test_parse_cpuinfo_takes_first_cpu():
    text = (
        "processor\t: 0\n"
        "vendor_id\t: AuthenticAMD\n"
        "model name\t: AMD Ryzen 7   5800X 8-Core Processor\n"
        "processor\t: 1\n"
        "vendor_id\t: Other\n"
    )
    assert parse_cpuinfo(text) == ("AuthenticAMD", "AMD Ryzen 7 5800X 8-Core Processor")


def test_read_cpuinfo_from_file(tmp_path):
    p = tmp_path / "cpuinfo"
    p.write_text("vendor_id : GenuineIntel\nmodel name : 12th Gen Intel\n")
    assert read_cpuinfo(str(p)) == ("GenuineIntel", "12th Gen Intel")
