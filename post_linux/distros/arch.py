"""Arch Linux step groups"""

import glob
import os
import pwd
import re
from contextlib import contextmanager

from .. import config
from ..errors import PrivilegeError
from ..nvidia.drivers import arch_driver_steps
from ..pipeline.model import GroupKind, RunContext, Step, StepOutcome
from ..system.facts import DesktopEnv
from ..utils.logging import log_info, log_warn
from ..utils.system import PacmanManager, run_as_user, run_command
from .common import (
    GNOME_BLOAT,
    KDE_BLOAT,
    flathub_step,
    install_step,
    media_players_step,
    prune_step,
    system_update_step,
)

YAY_REPO = "https://aur.archlinux.org/yay.git"

GSTREAMER = [
    "gst-libav", "gst-plugins-base", "gst-plugins-good", "gst-plugins-bad",
    "gst-plugins-ugly", "gstreamer-vaapi",
]
ARCHIVE_TOOLS = ["tar", "gzip", "zip", "unzip", "7zip"]

package_manager = PacmanManager


def enable_multilib(content: str) -> str:
    """Uncomment the [multilib] section of pacman.conf text.

    Appends a fresh section when there is no commented one to enable.
    Returns the content unchanged if multilib is already enabled.
    """
    lines = content.splitlines(keepends=True)
    if any(line.strip() == "[multilib]" for line in lines):
        return content

    for row, line in enumerate(lines):
        if re.match(r'^#\s*\[multilib\]\s*$', line):
            lines[row] = re.sub(r'^#\s*', '', line)
            if row + 1 < len(lines) and lines[row + 1].lstrip().startswith('#'):
                lines[row + 1] = re.sub(r'^#\s*', '', lines[row + 1])
            return "".join(lines)

    if content and not content.endswith("\n"):
        content += "\n"
    return content + "\n[multilib]\nInclude = /etc/pacman.d/mirrorlist\n"


def _multilib(ctx: RunContext, path: str = config.PACMAN_CONF):
    with open(path, 'r') as fh:
        content = fh.read()
    updated = enable_multilib(content)
    if updated == content:
        log_warn("multilib repository already enabled")
        return StepOutcome.SKIPPED
    with open(path, 'w') as fh:
        fh.write(updated)
    ctx.packages.refresh()
    return StepOutcome.DONE


@contextmanager
def temporary_pacman_rule(user: str, path: str = config.SUDOERS_DROPIN):
    """Let ``user`` run pacman without a password while makepkg resolves deps.

    The drop-in is validated with visudo before it is kept, and removed again
    on exit.
    """
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o440)
    with os.fdopen(fd, 'w') as fh:
        fh.write(f"{user} ALL=(root) NOPASSWD: /usr/bin/pacman\n")
    # O_CREAT only applies the mode to a new file
    os.chmod(path, 0o440)
    try:
        run_command(["visudo", "-cf", path])
    except Exception:
        os.remove(path)
        raise
    try:
        yield path
    finally:
        try:
            os.remove(path)
        except OSError as e:
            log_warn(f"Could not remove {path}: {e}")


def _newest_package(build_dir: str):
    built = [p for p in glob.glob(os.path.join(build_dir, "*.pkg.tar.*"))
             if "-debug-" not in os.path.basename(p) and not p.endswith(".sig")]
    if not built:
        return None
    return max(built, key=os.path.getmtime)


def _build_yay(ctx: RunContext):
    if ctx.packages.is_installed("yay"):
        return StepOutcome.SKIPPED

    user = ctx.privilege.invoking_user
    if not user:
        raise PrivilegeError("Cannot determine a non-root user to build yay.")

    home = pwd.getpwnam(user).pw_dir
    build_dir = os.path.join(home, "yay")

    with temporary_pacman_rule(user):
        log_info(f"Cloning yay (as {user})...")
        run_as_user(user, f"cd ~ && ([ -d yay ] || git clone {YAY_REPO})")
        log_info(f"Building yay package (as {user})...")
        run_as_user(user, "cd ~/yay && makepkg -sf --noconfirm")

    package = _newest_package(build_dir)
    if package is None:
        raise RuntimeError(f"Failed to locate built yay package in {build_dir}")
    ctx.packages.install_file(package)
    return StepOutcome.DONE


def _prune_libreoffice(ctx: RunContext):
    if ctx.facts.desktop_env is not DesktopEnv.KDE:
        return StepOutcome.SKIPPED
    installed = ctx.packages.installed_matching("libreoffice")
    if not installed:
        return StepOutcome.SKIPPED
    ctx.packages.remove(*installed, check=False)
    return StepOutcome.DONE


def steps() -> dict[GroupKind, list[Step]]:
    return {
        GroupKind.UPDATE: [system_update_step("Refresh package databases & upgrade")],
        GroupKind.REPO_ENABLE: [Step("Enable multilib repository", _multilib)],
        GroupKind.DRIVER_INSTALL: arch_driver_steps(),
        GroupKind.POST_INSTALL: [
            install_step("base-devel + git", "base-devel", "git"),
            Step("yay (AUR helper)", _build_yay),
        ],
        GroupKind.APP_STORE: [install_step("Flatpak", "flatpak"), flathub_step()],
        GroupKind.MEDIA: [install_step("GStreamer", *GSTREAMER), media_players_step()],
        GroupKind.HW_ACCEL: [install_step("NVIDIA VAAPI driver", "libva-nvidia-driver")],
        GroupKind.ARCHIVE_TOOLS: [install_step("Archive tools (tar, zip, 7zip)", *ARCHIVE_TOOLS)],
        GroupKind.BROWSER: [install_step("Firefox", "firefox")],
        GroupKind.DESKTOP_TUNE: [
            Step("Remove LibreOffice (KDE)", _prune_libreoffice, best_effort=True),
            prune_step(DesktopEnv.KDE, [*KDE_BLOAT, "elisa"]),
            prune_step(DesktopEnv.GNOME, GNOME_BLOAT),
        ],
    }
