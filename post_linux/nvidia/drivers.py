"""NVIDIA driver installation steps for each distribution family.

Every install step re-verifies before doing real work: a driver that already
answers nvidia-smi, or whose packages are already recorded as installed, is
reported as SKIPPED.
"""

import os
import subprocess

from .. import config
from ..distros.common import drm_modeset_step, install_step, write_file_if_changed
from ..pipeline.model import BackgroundStep, GpuGeneration, RunContext, Step, StepOutcome
from ..system.facts import nvidia_driver_active
from ..utils.logging import log_info, log_warn, log_success
from ..utils.system import command_exists, command_succeeds, run_command
from .resolver import DriverVariant, resolve

FEDORA_BUILD_DEPS = [
    "kernel-devel", "kernel-headers", "gcc", "make", "dkms", "acpid",
    "libglvnd-glx", "libglvnd-opengl", "libglvnd-devel", "pkgconfig",
]
FEDORA_DRIVER = ["akmod-nvidia", "xorg-x11-drv-nvidia-cuda"]
FEDORA_OPEN_MACRO = "%_with_kmod_nvidia_open 1\n"

ARCH_OPEN_DRIVER = ["nvidia-open", "nvidia-utils", "lib32-nvidia-utils"]
ARCH_PROPRIETARY_DRIVER = ["nvidia", "nvidia-utils", "lib32-nvidia-utils"]

DEBIAN_DRIVER = ["nvidia-driver", "firmware-misc-nonfree"]


def variant_for(generation: GpuGeneration) -> DriverVariant:
    """Modern GPUs use the open kernel modules"""
    if generation is GpuGeneration.MODERN:
        return DriverVariant.OPEN
    return DriverVariant.PROPRIETARY


def _kernel_headers_package() -> str:
    return f"linux-headers-{os.uname().release}"


def _install_driver_packages(ctx: RunContext, packages: list[str]):
    """Shared idempotence check for fixed-name driver packages"""
    if nvidia_driver_active():
        log_success("NVIDIA driver already present and working.")
        return StepOutcome.SKIPPED
    missing = ctx.packages.missing(*packages)
    if not missing:
        log_info("NVIDIA driver packages already installed (reboot pending?)")
        return StepOutcome.SKIPPED
    ctx.packages.install(*missing)
    return StepOutcome.DONE


# ---------------------------------------------------------------------------
# Fedora
# ---------------------------------------------------------------------------

def _warn_secure_boot(ctx: RunContext):
    if not command_exists("mokutil"):
        return StepOutcome.SKIPPED
    state = run_command(["mokutil", "--sb-state"], capture_output=True, check=False, quiet=True) or ""
    if "enabled" in state.lower():
        log_warn("Secure Boot is ENABLED. NVIDIA modules may not load unless you "
                 "enroll a MOK or disable Secure Boot.")
    return StepOutcome.DONE


def _fedora_open_macro(ctx: RunContext, path: str = config.RPM_KMOD_MACRO):
    if ctx.selections.gpu_generation is not GpuGeneration.MODERN:
        return StepOutcome.SKIPPED
    if not write_file_if_changed(path, FEDORA_OPEN_MACRO):
        return StepOutcome.SKIPPED
    log_info(f"Open kernel module macro written to {path}")
    return StepOutcome.DONE


def _fedora_driver(ctx: RunContext):
    return _install_driver_packages(ctx, FEDORA_DRIVER)


def kernel_module_built() -> bool:
    """True once akmods has produced a loadable nvidia module"""
    return command_succeeds(["modinfo", "-F", "version", "nvidia"])


def _fedora_akmods_build(ctx: RunContext):
    if nvidia_driver_active() or kernel_module_built():
        return StepOutcome.SKIPPED
    log_warn("Building the NVIDIA kernel module. This can take 5-15 minutes "
             "(monitor with: journalctl -f -u akmods)")
    # Not waited on past the timeout; the build keeps running detached.
    return subprocess.Popen(
        ["akmods", "--force"],
        stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


def fedora_driver_steps() -> list[Step]:
    return [
        Step("Secure Boot check", _warn_secure_boot),
        install_step("Kernel headers & dev tools", *FEDORA_BUILD_DEPS),
        Step("Open kernel module macro", _fedora_open_macro),
        Step("NVIDIA driver (akmod + CUDA userspace)", _fedora_driver),
        BackgroundStep("NVIDIA kernel module build", _fedora_akmods_build,
                       timeout=config.BACKGROUND_BUILD_TIMEOUT,
                       poll_interval=config.BACKGROUND_POLL_INTERVAL),
        drm_modeset_step(),
    ]


# ---------------------------------------------------------------------------
# Arch
# ---------------------------------------------------------------------------

def _arch_driver(ctx: RunContext):
    if variant_for(ctx.selections.gpu_generation) is DriverVariant.OPEN:
        packages = ARCH_OPEN_DRIVER
    else:
        packages = ARCH_PROPRIETARY_DRIVER
    return _install_driver_packages(ctx, packages)


def arch_driver_steps() -> list[Step]:
    return [
        Step("NVIDIA driver + utils + lib32", _arch_driver),
        drm_modeset_step(),
    ]


# ---------------------------------------------------------------------------
# Ubuntu / Mint (per-version candidates from ubuntu-drivers)
# ---------------------------------------------------------------------------

def list_driver_candidates() -> str:
    """Raw ``ubuntu-drivers list`` output ('' when unavailable)"""
    return run_command(["ubuntu-drivers", "list"], capture_output=True, check=False) or ""


def _ubuntu_driver(ctx: RunContext, listing_source=list_driver_candidates):
    if nvidia_driver_active():
        log_success("NVIDIA driver already present and working.")
        return StepOutcome.SKIPPED

    log_info("Probing available NVIDIA drivers...")
    listing = listing_source()
    for line in listing.splitlines():
        log_info(f"  {line}")

    package = resolve(listing, variant_for(ctx.selections.gpu_generation))
    if package is None:
        present = ctx.packages.installed_matching("nvidia-driver-")
        if present:
            log_info(f"{', '.join(present)} already installed (reboot pending?)")
            return StepOutcome.SKIPPED
        log_warn("Could not determine a specific driver package from ubuntu-drivers list. "
                 "Falling back to autoinstall.")
        run_command(["ubuntu-drivers", "autoinstall"])
        return StepOutcome.DONE

    if ctx.packages.is_installed(package):
        log_info(f"{package} already installed (reboot pending?)")
        return StepOutcome.SKIPPED

    log_info(f"Selected driver package: {package}")
    ctx.packages.install(package)
    return StepOutcome.DONE


def ubuntu_driver_steps() -> list[Step]:
    return [
        install_step("Build tools + kernel headers", "build-essential", _kernel_headers_package()),
        install_step("ubuntu-drivers-common", "ubuntu-drivers-common"),
        Step("NVIDIA driver (ubuntu-drivers)", _ubuntu_driver),
        drm_modeset_step(),
    ]


# ---------------------------------------------------------------------------
# Debian (single rolling package name)
# ---------------------------------------------------------------------------

def _debian_driver(ctx: RunContext):
    return _install_driver_packages(ctx, DEBIAN_DRIVER)


def debian_driver_steps() -> list[Step]:
    return [
        install_step("Kernel headers", _kernel_headers_package()),
        Step("NVIDIA driver (nvidia-driver)", _debian_driver),
        drm_modeset_step(),
    ]
