"""Detection of facts about the running machine.

Nothing here raises: every signal that cannot be resolved degrades to an
explicit UNKNOWN value, and steps that depend on it simply do not trigger.
"""

import os
from dataclasses import dataclass
from enum import Enum

from .. import config
from ..utils.logging import log_info, log_warn, log_success
from ..utils.system import command_succeeds, read_key_value_file, run_command


class OsFamily(Enum):
    """Supported distribution families."""
    FEDORA = "fedora"
    ARCH = "arch"
    UBUNTU = "ubuntu"
    MINT = "mint"
    DEBIAN = "debian"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return _OS_LABELS[self]


_OS_LABELS = {
    OsFamily.FEDORA: "Fedora",
    OsFamily.ARCH: "Arch Linux",
    OsFamily.UBUNTU: "Ubuntu",
    OsFamily.MINT: "Linux Mint",
    OsFamily.DEBIAN: "Debian",
    OsFamily.UNKNOWN: "an unknown OS",
}

# Order matters: Mint lists "ubuntu debian" in ID_LIKE and Ubuntu lists "debian".
_KNOWN_IDS: list[tuple[str, OsFamily]] = [
    ("linuxmint", OsFamily.MINT),
    ("ubuntu", OsFamily.UBUNTU),
    ("debian", OsFamily.DEBIAN),
    ("fedora", OsFamily.FEDORA),
    ("arch", OsFamily.ARCH),
]


class DesktopEnv(Enum):
    """Graphical session types that have desktop-specific steps."""
    GNOME = "gnome"
    KDE = "kde"
    CINNAMON = "cinnamon"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SystemFacts:
    os_id: OsFamily
    desktop_env: DesktopEnv
    driver_already_active: bool
    os_pretty_name: str = "Unknown OS"


def match_os_family(os_id: str, id_like: str = "") -> OsFamily:
    """Map os-release ID / ID_LIKE values to a supported family.

    The exact ID is tried against every known id before any ID_LIKE token,
    so derivatives resolve to their own family when it is supported.
    """
    os_id = os_id.strip().lower()
    for known, family in _KNOWN_IDS:
        if os_id == known:
            return family

    like_tokens = id_like.lower().split()
    for known, family in _KNOWN_IDS:
        if known in like_tokens:
            return family
    return OsFamily.UNKNOWN


def detect_os(os_release=config.OS_RELEASE, lsb_release=config.LSB_RELEASE) -> tuple[OsFamily, str]:
    """Identify the running distribution.

    Returns:
        (family, pretty_name)
    """
    info = read_key_value_file(os_release)
    pretty_name = info.get('PRETTY_NAME') or info.get('NAME') or "Unknown OS"
    family = match_os_family(info.get('ID', ''), info.get('ID_LIKE', ''))

    if family is OsFamily.UNKNOWN:
        lsb = read_key_value_file(lsb_release)
        family = match_os_family(lsb.get('DISTRIB_ID', ''))
        if lsb.get('DISTRIB_DESCRIPTION') and pretty_name == "Unknown OS":
            pretty_name = lsb['DISTRIB_DESCRIPTION']

    return family, pretty_name


def match_desktop(text: str) -> DesktopEnv:
    """Substring-match a session description against known desktops"""
    lowered = text.lower()
    if "cinnamon" in lowered:
        return DesktopEnv.CINNAMON
    if "kde" in lowered or "plasma" in lowered:
        return DesktopEnv.KDE
    if "gnome" in lowered:
        return DesktopEnv.GNOME
    return DesktopEnv.UNKNOWN


def _loginctl_session_desktop() -> str:
    """Ask logind for the Desktop/Type of the first session.

    Returns an empty string when loginctl is missing or reports nothing.
    """
    try:
        sessions = run_command(
            ["loginctl", "list-sessions", "--no-legend"],
            capture_output=True, check=False, quiet=True,
        )
    except OSError:
        return ""
    if not sessions:
        return ""

    session_id = sessions.split()[0]
    try:
        details = run_command(
            ["loginctl", "show-session", session_id, "-p", "Desktop", "-p", "Type"],
            capture_output=True, check=False, quiet=True,
        )
    except OSError:
        return ""
    return details or ""


def detect_desktop(environ) -> DesktopEnv:
    """Identify the desktop environment from the session variables,
    falling back to logind.
    """
    raw = environ.get("XDG_CURRENT_DESKTOP", "") + environ.get("DESKTOP_SESSION", "")
    desktop = match_desktop(raw)
    if desktop is DesktopEnv.UNKNOWN:
        desktop = match_desktop(_loginctl_session_desktop())
    return desktop


def nvidia_driver_active() -> bool:
    """True when nvidia-smi runs and exits cleanly"""
    return command_succeeds(["nvidia-smi"])


def detect(environ=None) -> SystemFacts:
    """Inspect the machine once and freeze the result"""
    if environ is None:
        environ = os.environ

    family, pretty_name = detect_os()
    desktop = detect_desktop(environ)
    active = nvidia_driver_active()

    if family is OsFamily.UNKNOWN:
        log_warn(f"Could not match {pretty_name} to a supported OS family")
    else:
        log_info(f"Operating system: {pretty_name} ({family.label} family)")

    if desktop is DesktopEnv.UNKNOWN:
        log_warn("Desktop environment could not be determined; desktop-specific steps will be skipped")
    else:
        log_success(f"Desktop environment detected: {desktop.value}")

    log_info(f"NVIDIA driver active: {'yes' if active else 'no'}")

    return SystemFacts(
        os_id=family,
        desktop_env=desktop,
        driver_already_active=active,
        os_pretty_name=pretty_name,
    )
