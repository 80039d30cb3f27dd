"""Ubuntu step groups.

Linux Mint reuses the APT update steps defined here.
"""

import glob
import os
import urllib.request

from ..nvidia.drivers import ubuntu_driver_steps
from ..pipeline.model import GroupKind, RunContext, Step, StepOutcome
from ..system.facts import DesktopEnv
from ..utils.logging import log_info, log_warn
from ..utils.system import AptManager, command_exists, run_command
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
    write_file_if_changed,
)

APT_SOURCES = ["/etc/apt/sources.list", "/etc/apt/sources.list.d/*.list", "/etc/apt/sources.list.d/*.sources"]

MOZILLA_KEY_URL = "https://packages.mozilla.org/apt/repo-signing-key.gpg"
MOZILLA_KEYRING = "/etc/apt/keyrings/packages.mozilla.org.asc"
MOZILLA_FINGERPRINT = "35BAA0B33E9EB396F59CA838C0BA5CE6DC6315A3"
MOZILLA_SOURCE = "/etc/apt/sources.list.d/mozilla.list"
MOZILLA_SOURCE_LINE = (
    f"deb [signed-by={MOZILLA_KEYRING}] https://packages.mozilla.org/apt mozilla main\n"
)
MOZILLA_PIN = "/etc/apt/preferences.d/mozilla"
MOZILLA_PIN_CONTENT = "Package: *\nPin: origin packages.mozilla.org\nPin-Priority: 1000\n"

NOSNAP_PIN = "/etc/apt/preferences.d/nosnap.pref"
NOSNAP_PIN_CONTENT = "Package: snapd\nPin: release a=*\nPin-Priority: -10\n"
SNAP_BASES = ("core", "snapd", "bare")

ARCHIVE_TOOLS = ["7zip", "file-roller", "rar"]

package_manager = AptManager


def apt_component_enabled(component: str, patterns=APT_SOURCES) -> bool:
    """Check one-line and deb822 APT sources for an enabled component"""
    for pattern in patterns:
        for path in glob.glob(pattern):
            try:
                with open(path, 'r') as fh:
                    lines = fh.readlines()
            except OSError:
                continue
            for line in lines:
                stripped = line.strip()
                if stripped.startswith("deb ") or stripped.startswith("Components:"):
                    if component in stripped.split():
                        return True
    return False


def _autoremove(ctx: RunContext):
    ctx.packages.autoremove()
    return StepOutcome.DONE


def _multiverse(ctx: RunContext):
    if apt_component_enabled("multiverse"):
        log_warn("multiverse repository already enabled")
        return StepOutcome.SKIPPED
    run_command(["add-apt-repository", "-y", "multiverse"])
    AptManager.reset_cache()
    return StepOutcome.DONE


def installed_snaps() -> list[str]:
    """Snap names, applications first and base snaps last"""
    output = run_command(["snap", "list"], capture_output=True, check=False, quiet=True)
    if not output:
        return []
    names = [line.split()[0] for line in output.splitlines()[1:] if line.strip()]
    apps = [n for n in names if not n.startswith(SNAP_BASES)]
    bases = [n for n in names if n.startswith(SNAP_BASES) and n != "snapd"]
    ordered = apps + bases
    if "snapd" in names:
        ordered.append("snapd")
    return ordered


def _remove_snaps(ctx: RunContext):
    if not command_exists("snap"):
        write_file_if_changed(NOSNAP_PIN, NOSNAP_PIN_CONTENT)
        return StepOutcome.SKIPPED
    for name in installed_snaps():
        run_command(["snap", "remove", "--purge", name], check=False)
    run_command(["apt-get", "purge", "-y", "snapd"])
    write_file_if_changed(NOSNAP_PIN, NOSNAP_PIN_CONTENT)
    log_info(f"snapd pinned out via {NOSNAP_PIN}")
    return StepOutcome.DONE


def _restricted_extras(ctx: RunContext):
    if ctx.packages.is_installed("ubuntu-restricted-extras"):
        return StepOutcome.SKIPPED
    run_command("echo 'ttf-mscorefonts-installer msttcorefonts/accepted-mscorefonts-eula "
                "select true' | debconf-set-selections")
    ctx.packages.install("ubuntu-restricted-extras")
    return StepOutcome.DONE


def key_fingerprint(path: str) -> str:
    output = run_command(
        ["gpg", "--show-keys", "--with-colons", "--with-fingerprint", path],
        capture_output=True, quiet=True,
    )
    for line in output.splitlines():
        if line.startswith("fpr:"):
            return line.split(":")[9]
    return ""


def _mozilla_repository(ctx: RunContext):
    changed = False
    if not os.path.exists(MOZILLA_KEYRING):
        os.makedirs(os.path.dirname(MOZILLA_KEYRING), mode=0o755, exist_ok=True)
        log_info(f"Downloading {MOZILLA_KEY_URL}")
        with urllib.request.urlopen(MOZILLA_KEY_URL, timeout=30) as resp:
            key = resp.read()
        with open(MOZILLA_KEYRING, 'wb') as fh:
            fh.write(key)
        changed = True

    fingerprint = key_fingerprint(MOZILLA_KEYRING)
    if fingerprint != MOZILLA_FINGERPRINT:
        os.remove(MOZILLA_KEYRING)
        raise RuntimeError(f"Mozilla key fingerprint mismatch: {fingerprint or 'none'}")

    changed |= write_file_if_changed(MOZILLA_SOURCE, MOZILLA_SOURCE_LINE)
    changed |= write_file_if_changed(MOZILLA_PIN, MOZILLA_PIN_CONTENT)
    if not changed:
        return StepOutcome.SKIPPED
    AptManager.reset_cache()
    return StepOutcome.DONE


def _firefox_deb(ctx: RunContext):
    """Install Firefox from Mozilla unless a real (non-snap transitional) deb is present"""
    version = run_command(["dpkg-query", "-W", "-f=${Version}", "firefox"],
                          capture_output=True, check=False, quiet=True)
    if ctx.packages.is_installed("firefox") and version and "snap" not in version:
        return StepOutcome.SKIPPED
    ctx.packages.install("firefox", extra_args=["--allow-downgrades"])
    return StepOutcome.DONE


def mozilla_firefox_steps() -> list[Step]:
    return [
        Step("Mozilla APT repository", _mozilla_repository),
        Step("Firefox (APT)", _firefox_deb),
    ]


def apt_update_steps() -> list[Step]:
    return [
        system_update_step("apt update & dist-upgrade"),
        install_step("software-properties-common", "software-properties-common"),
        Step("Autoremove unused packages", _autoremove),
    ]


def steps() -> dict[GroupKind, list[Step]]:
    return {
        GroupKind.UPDATE: apt_update_steps(),
        GroupKind.REPO_ENABLE: [Step("Enable multiverse", _multiverse)],
        GroupKind.DRIVER_INSTALL: ubuntu_driver_steps(),
        GroupKind.POST_INSTALL: [reboot_notice_step()],
        GroupKind.APP_STORE: [
            Step("Remove Snap packages", _remove_snaps, best_effort=True),
            flatpak_installed_step(),
            flathub_step(),
        ],
        GroupKind.MEDIA: [Step("ubuntu-restricted-extras", _restricted_extras), media_players_step()],
        GroupKind.HW_ACCEL: [install_step("NVIDIA VAAPI driver", "nvidia-vaapi-driver")],
        GroupKind.ARCHIVE_TOOLS: [install_step("Archive tools (7zip, file-roller, rar)", *ARCHIVE_TOOLS)],
        GroupKind.BROWSER: mozilla_firefox_steps(),
        GroupKind.DESKTOP_TUNE: [
            prune_step(DesktopEnv.KDE, KDE_BLOAT),
            prune_step(DesktopEnv.GNOME, GNOME_BLOAT),
        ],
    }
