"""Debian step groups"""

import os

from ..nvidia.drivers import debian_driver_steps
from ..pipeline.model import GroupKind, RunContext, Step, StepOutcome
from ..system.facts import DesktopEnv
from ..utils.logging import log_info, log_warn
from ..utils.system import AptManager
from .common import (
    GNOME_BLOAT,
    KDE_BLOAT,
    flatpak_installed_step,
    flathub_step,
    install_step,
    media_players_step,
    prune_step,
    reboot_notice_step,
    system_update_step,
)

NONFREE_COMPONENTS = ["contrib", "non-free", "non-free-firmware"]
SOURCES_FILES = ["/etc/apt/sources.list.d/debian.sources", "/etc/apt/sources.list"]

CODECS = ["libavcodec-extra", "gstreamer1.0-libav", "gstreamer1.0-plugins-ugly", "gstreamer1.0-plugins-bad"]
ARCHIVE_TOOLS = ["7zip", "unrar-free", "file-roller"]

package_manager = AptManager


def add_components(content: str, components=NONFREE_COMPONENTS) -> str:
    """Append missing components to every Debian source entry.

    Handles one-line ``deb``/``deb-src`` entries and deb822 ``Components:``
    fields. Lines that do not name ``main`` (third-party entries) are left
    alone.
    """
    out = []
    for line in content.splitlines(keepends=True):
        stripped = line.rstrip("\n")
        words = stripped.split()
        is_entry = (stripped.startswith(("deb ", "deb-src ")) or stripped.startswith("Components:"))
        if is_entry and "main" in words:
            missing = [c for c in components if c not in words]
            if missing:
                newline = "\n" if line.endswith("\n") else ""
                line = stripped + " " + " ".join(missing) + newline
        out.append(line)
    return "".join(out)


def _enable_nonfree(ctx: RunContext, paths=SOURCES_FILES):
    changed = False
    for path in paths:
        if not os.path.exists(path):
            continue
        with open(path, 'r') as fh:
            content = fh.read()
        updated = add_components(content)
        if updated != content:
            with open(path, 'w') as fh:
                fh.write(updated)
            log_info(f"Enabled {' '.join(NONFREE_COMPONENTS)} in {path}")
            changed = True

    if not changed:
        log_warn("contrib / non-free components already enabled")
        return StepOutcome.SKIPPED
    AptManager.reset_cache()
    return StepOutcome.DONE


def steps() -> dict[GroupKind, list[Step]]:
    return {
        GroupKind.UPDATE: [system_update_step("apt update & dist-upgrade")],
        GroupKind.REPO_ENABLE: [Step("Enable contrib / non-free", _enable_nonfree)],
        GroupKind.DRIVER_INSTALL: debian_driver_steps(),
        GroupKind.POST_INSTALL: [reboot_notice_step()],
        GroupKind.APP_STORE: [flatpak_installed_step(), flathub_step()],
        GroupKind.MEDIA: [install_step("Multimedia codecs", *CODECS), media_players_step()],
        GroupKind.HW_ACCEL: [install_step("NVIDIA VAAPI driver", "nvidia-vaapi-driver")],
        GroupKind.ARCHIVE_TOOLS: [install_step("Archive tools (7zip, unrar)", *ARCHIVE_TOOLS)],
        GroupKind.BROWSER: [install_step("Firefox ESR", "firefox-esr")],
        GroupKind.DESKTOP_TUNE: [
            prune_step(DesktopEnv.KDE, KDE_BLOAT),
            prune_step(DesktopEnv.GNOME, GNOME_BLOAT),
        ],
    }
