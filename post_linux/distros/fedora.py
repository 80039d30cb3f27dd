"""Fedora step groups"""

from ..nvidia.drivers import fedora_driver_steps
from ..pipeline.model import GroupKind, RunContext, Step, StepOutcome
from ..system.facts import DesktopEnv
from ..utils.logging import log_warn
from ..utils.system import DnfManager, run_command
from .common import (
    GNOME_BLOAT,
    KDE_BLOAT,
    flathub_step,
    install_step,
    media_players_step,
    prune_step,
    system_update_step,
)

RPMFUSION_URL = "https://mirrors.rpmfusion.org/{kind}/fedora/rpmfusion-{kind}-release-{release}.noarch.rpm"

GSTREAMER = [
    "gstreamer1-plugins-bad-*", "gstreamer1-plugins-good-*", "gstreamer1-plugins-base",
    "gstreamer1-plugin-openh264", "gstreamer1-libav", "lame*",
]
MEDIA_GROUPS = ["multimedia", "sound-and-video"]
HW_ACCEL = ["ffmpeg-libs", "libva", "libva-utils", "nvidia-vaapi-driver"]
ARCHIVE_TOOLS = ["p7zip", "p7zip-plugins", "unrar"]

package_manager = DnfManager


def fedora_release() -> str:
    return run_command(["rpm", "-E", "%fedora"], capture_output=True, quiet=True)


def _rpmfusion_step(kind: str) -> Step:
    label = f"RPM Fusion ({kind})"

    def action(ctx: RunContext):
        if ctx.packages.is_installed(f"rpmfusion-{kind}-release"):
            log_warn(f"{label} already enabled")
            return StepOutcome.SKIPPED
        ctx.packages.install(RPMFUSION_URL.format(kind=kind, release=fedora_release()))
        return StepOutcome.DONE

    return Step(label, action)


def _core_group_upgrade(ctx: RunContext):
    run_command(["dnf", "group", "upgrade", "-y", "core"])
    return StepOutcome.DONE


def _remove_fedora_flatpak_remote(ctx: RunContext):
    remotes = run_command(["flatpak", "remotes", "--columns=name"],
                          capture_output=True, check=False, quiet=True) or ""
    if "fedora" not in remotes.split():
        return StepOutcome.SKIPPED
    run_command(["flatpak", "remote-delete", "fedora"])
    return StepOutcome.DONE


def _swap_ffmpeg(ctx: RunContext):
    """Replace Fedora's ffmpeg-free with the full RPM Fusion build"""
    if ctx.packages.is_installed("ffmpeg"):
        return StepOutcome.SKIPPED
    run_command(["dnf", "swap", "-y", "ffmpeg-free", "ffmpeg", "--allowerasing"])
    return StepOutcome.DONE


def _gstreamer(ctx: RunContext):
    # Wildcard entries cannot be queried; the concrete packages decide.
    concrete = [p for p in GSTREAMER if "*" not in p]
    if not ctx.packages.missing(*concrete):
        return StepOutcome.SKIPPED
    ctx.packages.install(*GSTREAMER, extra_args=["--exclude=gstreamer1-plugins-bad-free-devel"])
    return StepOutcome.DONE


def _media_groups(ctx: RunContext):
    missing = [group for group in MEDIA_GROUPS if not ctx.packages.group_installed(group)]
    if not missing:
        return StepOutcome.SKIPPED
    for group in missing:
        ctx.packages.install_group(group)
    return StepOutcome.DONE


def steps() -> dict[GroupKind, list[Step]]:
    return {
        GroupKind.UPDATE: [system_update_step("Refresh DNF metadata & upgrade")],
        GroupKind.REPO_ENABLE: [_rpmfusion_step("free"), _rpmfusion_step("nonfree")],
        GroupKind.DRIVER_INSTALL: fedora_driver_steps(),
        GroupKind.POST_INSTALL: [
            Step("Upgrade core group", _core_group_upgrade),
            system_update_step("Update with RPM Fusion enabled"),
        ],
        GroupKind.APP_STORE: [
            Step("Remove Fedora Flatpak remote", _remove_fedora_flatpak_remote, best_effort=True),
            flathub_step(),
        ],
        GroupKind.MEDIA: [
            Step("Full ffmpeg from RPM Fusion", _swap_ffmpeg),
            Step("GStreamer plugins", _gstreamer),
            Step("Multimedia groups", _media_groups),
            media_players_step(),
        ],
        GroupKind.HW_ACCEL: [install_step("VA-API libs + NVIDIA VAAPI driver", *HW_ACCEL)],
        GroupKind.ARCHIVE_TOOLS: [install_step("Archive tools (7zip + unrar)", *ARCHIVE_TOOLS)],
        GroupKind.BROWSER: [install_step("Firefox", "firefox")],
        GroupKind.DESKTOP_TUNE: [
            prune_step(DesktopEnv.KDE, ["libreoffice-core", *KDE_BLOAT, "elisa-player"]),
            prune_step(DesktopEnv.GNOME, GNOME_BLOAT),
        ],
    }
