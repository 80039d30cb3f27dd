"""Linux Mint step groups.

Mint already ships multiverse, Flatpak and a Firefox deb, so those groups
only verify; driver selection goes through ubuntu-drivers as on Ubuntu.
"""

from ..nvidia.drivers import ubuntu_driver_steps
from ..pipeline.model import GroupKind, Step
from ..system.facts import DesktopEnv
from ..utils.system import AptManager
from .common import (
    GNOME_BLOAT,
    KDE_BLOAT,
    desktop_install_step,
    flatpak_installed_step,
    flathub_step,
    install_step,
    media_players_step,
    prune_step,
    reboot_notice_step,
)
from .ubuntu import apt_update_steps

CINNAMON_THEMING = ["mint-themes", "mint-y-icons", "papirus-icon-theme"]
ARCHIVE_TOOLS = ["7zip", "unrar", "file-roller"]

package_manager = AptManager


def steps() -> dict[GroupKind, list[Step]]:
    return {
        GroupKind.UPDATE: apt_update_steps(),
        GroupKind.REPO_ENABLE: [],
        GroupKind.DRIVER_INSTALL: ubuntu_driver_steps(),
        GroupKind.POST_INSTALL: [reboot_notice_step()],
        GroupKind.APP_STORE: [flatpak_installed_step(), flathub_step()],
        GroupKind.MEDIA: [install_step("Multimedia codecs", "mint-meta-codecs"), media_players_step()],
        GroupKind.HW_ACCEL: [install_step("NVIDIA VAAPI driver", "nvidia-vaapi-driver")],
        GroupKind.ARCHIVE_TOOLS: [install_step("Archive tools (7zip, unrar)", *ARCHIVE_TOOLS)],
        GroupKind.BROWSER: [install_step("Firefox", "firefox")],
        GroupKind.DESKTOP_TUNE: [
            desktop_install_step(DesktopEnv.CINNAMON, "Cinnamon themes & icons", *CINNAMON_THEMING),
            prune_step(DesktopEnv.KDE, KDE_BLOAT),
            prune_step(DesktopEnv.GNOME, GNOME_BLOAT),
        ],
    }
