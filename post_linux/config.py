"""Static configuration for post-linux"""

# Self-update source. The artifact is the single-file zipapp release.
UPDATE_URL_ENV = "POST_LINUX_UPDATE_URL"
DEFAULT_UPDATE_URL = (
    "https://github.com/post-linux/post-linux/releases/latest/download/post-linux.pyz"
)
UPDATE_TIMEOUT = 15  # seconds

# akmods build wait (Fedora)
BACKGROUND_BUILD_TIMEOUT = 25 * 60  # seconds
BACKGROUND_POLL_INTERVAL = 5  # seconds

# Files written by steps
SUDOERS_DROPIN = "/etc/sudoers.d/10-post-linux-pacman"
MODPROBE_DROPIN = "/etc/modprobe.d/nvidia-drm.conf"
RPM_KMOD_MACRO = "/etc/rpm/macros.nvidia-kmod"
PACMAN_CONF = "/etc/pacman.conf"

OS_RELEASE = "/etc/os-release"
LSB_RELEASE = "/etc/lsb-release"

FLATHUB_URL = "https://dl.flathub.org/repo/flathub.flatpakrepo"
