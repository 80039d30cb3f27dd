"""NVIDIA driver package resolution from ubuntu-drivers listings.

``ubuntu-drivers list`` prints one candidate per line, sometimes with extra
annotations (``nvidia-driver-580-open, (kernel modules provided by ...)``).
The listing is tokenized into typed candidates and the newest one of the
requested variant is picked.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

DRIVER_PREFIX = "nvidia-driver"

# nvidia-driver-580 or nvidia-driver-580-open; "-server" and other suffixes
# are rejected by the trailing boundary.
_CANDIDATE_RE = re.compile(
    rf"(?<![\w-]){re.escape(DRIVER_PREFIX)}-(\d+)(-open)?(?![\w-])"
)


class DriverVariant(Enum):
    OPEN = "open"
    PROPRIETARY = "proprietary"


@dataclass(frozen=True)
class DriverCandidate:
    numeric_version: int
    variant: DriverVariant

    @property
    def package(self) -> str:
        suffix = "-open" if self.variant is DriverVariant.OPEN else ""
        return f"{DRIVER_PREFIX}-{self.numeric_version}{suffix}"


def parse_candidates(listing: str) -> list[DriverCandidate]:
    """Extract unique driver candidates from raw listing text, in order of appearance"""
    seen: set[DriverCandidate] = set()
    candidates: list[DriverCandidate] = []
    for match in _CANDIDATE_RE.finditer(listing):
        variant = DriverVariant.OPEN if match.group(2) else DriverVariant.PROPRIETARY
        candidate = DriverCandidate(int(match.group(1)), variant)
        if candidate not in seen:
            seen.add(candidate)
            candidates.append(candidate)
    return candidates


def select_newest(candidates: list[DriverCandidate], variant: DriverVariant) -> Optional[DriverCandidate]:
    """Newest candidate of the wanted variant, or None"""
    matching = [c for c in candidates if c.variant is variant]
    if not matching:
        return None
    return max(matching, key=lambda c: c.numeric_version)


def resolve(listing: str, variant: DriverVariant) -> Optional[str]:
    """Pick the package to install for the wanted variant.

    Returns:
        Package name, or None when the listing has no candidate of that
        variant. Callers fall back to ``ubuntu-drivers autoinstall``.
    """
    best = select_newest(parse_candidates(listing), variant)
    return best.package if best else None
