"""post-linux - Main package

Post-install provisioning for fresh Linux desktops: NVIDIA drivers,
third-party repositories, codecs, Flatpak, archive tools and desktop cleanup
for Fedora, Arch, Ubuntu, Linux Mint and Debian.
"""

__version__ = "0.7.0"
__package_name__ = "post-linux"
