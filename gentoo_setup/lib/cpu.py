from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Tuple

logger = logging.getLogger(__name__)

GENERIC_MARCH = "x86-64"

# First match wins; order matters (newest generation first).
_AMD_MARCH: List[Tuple[str, str]] = [
    (r"Ryzen.*7000|EPYC.*Genoa|EPYC.*Bergamo", "znver4"),
    (r"Ryzen.*5000|Ryzen.*6000|EPYC.*Milan|Threadripper.*5000", "znver3"),
    (r"Ryzen.*3000|Ryzen.*4000|EPYC.*Rome|Threadripper.*3000", "znver2"),
    (r"Ryzen.*2000|Ryzen.*1000|EPYC.*Naples|Threadripper.*[12]000", "znver1"),
]

_INTEL_MARCH: List[Tuple[str, str]] = [
    (r"13th Gen|14th Gen|Raptor Lake", "raptorlake"),
    (r"12th Gen|Alder Lake", "alderlake"),
    (r"11th Gen|Rocket Lake", "rocketlake"),
    (r"10th Gen|Comet Lake", "cometlake"),
    (r"Ice Lake", "icelake-client"),
    (r"Coffee Lake|9th Gen|8th Gen", "coffeelake"),
    (r"Kaby Lake|7th Gen", "kabylake"),
    (r"Skylake|6th Gen", "skylake"),
    (r"Haswell|4th Gen", "haswell"),
    (r"Ivy Bridge|3rd Gen", "ivybridge"),
    (r"Sandy Bridge|2nd Gen", "sandybridge"),
]

_TABLES = {
    "AuthenticAMD": _AMD_MARCH,
    "GenuineIntel": _INTEL_MARCH,
}


def march_for_cpu(vendor: str, model: str) -> str:
    """Map a /proc/cpuinfo vendor and model name to a GCC -march value."""

    for pattern, march in _TABLES.get(vendor, []):
        if re.search(pattern, model, re.IGNORECASE):
            return march
    return GENERIC_MARCH


def parse_cpuinfo(text: str) -> Tuple[str, str]:
    vendor = ""
    model = ""
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        if key == "vendor_id" and not vendor:
            vendor = value.strip()
        elif key == "model name" and not model:
            model = " ".join(value.split())
        if vendor and model:
            break
    return vendor, model


def read_cpuinfo(path: str = "/proc/cpuinfo") -> Tuple[str, str]:
    try:
        text = Path(path).read_text(encoding="utf-8", errors="ignore")
    except OSError:
        logger.warning("Unable to read %s", path)
        return "", ""
    return parse_cpuinfo(text)
