"""Step builders shared by every distribution pipeline.

Each builder returns a Step whose action re-checks its own target state and
reports SKIPPED when there is nothing to do.
"""

import os

from .. import config
from ..pipeline.model import RunContext, Step, StepOutcome
from ..system.facts import DesktopEnv
from ..utils.logging import log_info, log_warn
from ..utils.system import command_exists, run_command

KDE_BLOAT = [
    "kmahjongg", "kmines", "kpat", "kolourpaint", "skanpage", "akregator",
    "kmail", "krdc", "krdp", "neochat", "krfb", "ktnef", "dragon", "kamoso", "qrca",
]

GNOME_BLOAT = ["gnome-tour", "gnome-weather", "gnome-maps", "gnome-contacts", "totem"]

KDE_PLAYERS = ["mpc", "mpc-qt"]
DEFAULT_PLAYERS = ["celluloid", "mpv"]

MODPROBE_DRM = "options nvidia_drm modeset=1 fbdev=1\n"


def install_step(label: str, *packages: str, best_effort: bool = False) -> Step:
    """Install packages unless all of them are already installed"""
    def action(ctx: RunContext):
        missing = ctx.packages.missing(*packages)
        if not missing:
            return StepOutcome.SKIPPED
        ctx.packages.install(*missing)
        return StepOutcome.DONE

    return Step(label, action, best_effort=best_effort)


def media_players_step() -> Step:
    """KDE gets mpc-qt, everything else Celluloid + MPV"""
    def action(ctx: RunContext):
        if ctx.facts.desktop_env is DesktopEnv.KDE:
            players = KDE_PLAYERS
        else:
            players = DEFAULT_PLAYERS
        missing = ctx.packages.missing(*players)
        if not missing:
            return StepOutcome.SKIPPED
        log_info(f"Installing media players: {', '.join(missing)}")
        ctx.packages.install(*missing)
        return StepOutcome.DONE

    return Step("Media players (desktop-aware)", action)


def prune_step(desktop: DesktopEnv, packages: list[str], label: str = "") -> Step:
    """Best-effort removal of optional apps, only on the given desktop"""
    def action(ctx: RunContext):
        if ctx.facts.desktop_env is not desktop:
            return StepOutcome.SKIPPED
        present = [p for p in packages if ctx.packages.is_installed(p)]
        if not present:
            return StepOutcome.SKIPPED
        for package in present:
            ctx.packages.remove(package, check=False)
        return StepOutcome.DONE

    return Step(label or f"Prune optional {desktop.value.upper()} apps", action, best_effort=True)


def flathub_step() -> Step:
    """Add the Flathub remote system-wide"""
    def action(ctx: RunContext):
        remotes = run_command(["flatpak", "remotes", "--columns=name"],
                              capture_output=True, check=False, quiet=True) or ""
        if "flathub" in remotes.split():
            return StepOutcome.SKIPPED
        run_command(["flatpak", "remote-add", "--if-not-exists", "flathub", config.FLATHUB_URL])
        return StepOutcome.DONE

    return Step("Add Flathub remote", action)


def write_file_if_changed(path: str, content: str, mode: int = 0o644) -> bool:
    """Write a config drop-in unless it already has this exact content.

    Returns:
        True if the file was written.
    """
    try:
        with open(path, 'r') as fh:
            if fh.read() == content:
                return False
    except OSError:
        pass

    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w') as fh:
        fh.write(content)
    os.chmod(path, mode)
    return True


def drm_modeset_step(path: str = config.MODPROBE_DROPIN) -> Step:
    """Enable NVIDIA DRM kernel modesetting (needed for Wayland sessions)"""
    def action(ctx: RunContext):
        if not write_file_if_changed(path, MODPROBE_DRM):
            return StepOutcome.SKIPPED
        log_info(f"Wrote {path}")
        return StepOutcome.DONE

    return Step("NVIDIA DRM kernel modesetting", action)


def reboot_notice_step() -> Step:
    def action(ctx: RunContext):
        if ctx.facts.driver_already_active:
            return StepOutcome.SKIPPED
        log_warn("A reboot is required for the NVIDIA kernel modules to load.")
        return StepOutcome.DONE

    return Step("Reboot check", action)


def flatpak_installed_step(label: str = "Flatpak") -> Step:
    """Make sure the flatpak CLI is present"""
    def action(ctx: RunContext):
        if command_exists("flatpak"):
            return StepOutcome.SKIPPED
        ctx.packages.install("flatpak")
        return StepOutcome.DONE

    return Step(label, action)


def system_update_step(label: str = "Full system update") -> Step:
    """Refresh package metadata and upgrade everything"""
    def action(ctx: RunContext):
        ctx.packages.refresh()
        ctx.packages.upgrade()
        return StepOutcome.DONE

    return Step(label, action)


def desktop_install_step(desktop: DesktopEnv, label: str, *packages: str) -> Step:
    """Install packages only when running the given desktop"""
    def action(ctx: RunContext):
        if ctx.facts.desktop_env is not desktop:
            return StepOutcome.SKIPPED
        missing = ctx.packages.missing(*packages)
        if not missing:
            return StepOutcome.SKIPPED
        ctx.packages.install(*missing)
        return StepOutcome.DONE

    return Step(label, action)
