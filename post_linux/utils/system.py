"""System utilities for command execution and package management"""

import os
import re
import shlex
import shutil
import subprocess

from .logging import log_info, log_error


def _display(cmd):
    return cmd if isinstance(cmd, str) else shlex.join(cmd)


def run_command(cmd, shell=None, check=True, capture_output=False, env=None, quiet=False):
    """
    Execute a system command with logging

    Args:
        cmd: Command to execute (string or list)
        shell: Whether to use shell (default: True for strings, False for lists)
        check: Whether to raise exception on failure
        capture_output: Whether to capture and return output
        env: Extra environment variables
        quiet: Do not log the command line

    Returns:
        CompletedProcess object, or the stripped stdout if capture_output=True
        (None when the command failed and check=False)
    """
    if shell is None:
        shell = isinstance(cmd, str)
    if not quiet:
        log_info(f"Running: {_display(cmd)}")

    full_env = None
    if env:
        full_env = os.environ.copy()
        full_env.update(env)

    try:
        if capture_output:
            result = subprocess.run(cmd, shell=shell, check=check,
                                    capture_output=True, text=True,
                                    stdin=subprocess.DEVNULL, env=full_env)
            return result.stdout.strip()
        else:
            result = subprocess.run(cmd, shell=shell, check=check,
                                    stdin=subprocess.DEVNULL, env=full_env)
            return result
    except subprocess.CalledProcessError:
        log_error(f"Command failed: {_display(cmd)}")
        if check:
            raise
        return None


def command_succeeds(cmd):
    """Run a command silently and report whether it exited with status 0.

    A missing binary counts as failure.
    """
    try:
        result = subprocess.run(cmd, capture_output=True, text=True,
                                stdin=subprocess.DEVNULL)
    except OSError:
        return False
    return result.returncode == 0


def command_exists(name):
    """Check whether an executable is on PATH"""
    return shutil.which(name) is not None


def read_key_value_file(path):
    """Parse a shell-style KEY=value file such as /etc/os-release.

    Returns an empty dict if the file cannot be read.
    """
    info = {}
    try:
        with open(path, 'r') as f:
            lines = f.readlines()
    except OSError:
        return info

    for line in lines:
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        info[key] = value.strip().strip('"').strip("'")
    return info


def run_as_user(user, command, check=True):
    """Run a shell command as an unprivileged user via a login shell"""
    return run_command(["sudo", "-u", user, "bash", "-lc", command], check=check)


class PackageManager:
    """Common interface over the distribution package managers.

    Subclasses provide the query/install/remove contracts of the host tool;
    the tool itself is treated as opaque.
    """

    name = ""

    def is_installed(self, package: str) -> bool:
        raise NotImplementedError

    def missing(self, *packages: str) -> list[str]:
        """Return the packages that are not yet installed.

        Patterns with shell wildcards cannot be queried and always count as
        missing; the install commands are no-ops for present packages anyway.
        """
        return [p for p in packages if _is_pattern(p) or not self.is_installed(p)]

    def refresh(self):
        raise NotImplementedError

    def upgrade(self):
        raise NotImplementedError

    def install(self, *packages: str):
        raise NotImplementedError

    def remove(self, *packages: str, check: bool = True):
        raise NotImplementedError


def _is_pattern(package: str) -> bool:
    return any(c in package for c in "*?[")


class DnfManager(PackageManager):
    """Manages dnf operations"""

    name = "dnf"

    def is_installed(self, package):
        return command_succeeds(["rpm", "-q", package])

    def refresh(self):
        run_command(["dnf", "-y", "makecache"])

    def upgrade(self):
        run_command(["dnf", "-y", "upgrade"])

    def install(self, *packages, extra_args=()):
        run_command(["dnf", "install", "-y", *extra_args, *packages])

    def group_installed(self, group):
        """Check a comps group by id against ``dnf group list --installed``.

        dnf4 prints group names and dnf5 prints ids, so each column is
        compared in id form ("Sound and Video" -> "sound-and-video").
        """
        output = run_command(["dnf", "group", "list", "--installed"],
                             capture_output=True, check=False, quiet=True) or ""
        for line in output.splitlines():
            for column in re.split(r"\s{2,}", line.strip()):
                if column.lower().replace(" ", "-") == group:
                    return True
        return False

    def install_group(self, group):
        run_command(["dnf", "group", "install", "-y", group])

    def remove(self, *packages, check=True):
        run_command(["dnf", "remove", "-y", *packages], check=check)


class PacmanManager(PackageManager):
    """Manages pacman operations"""

    name = "pacman"

    def is_installed(self, package):
        return command_succeeds(["pacman", "-Q", package])

    def installed_matching(self, prefix):
        """List installed package names starting with prefix"""
        output = run_command(["pacman", "-Qq"], capture_output=True, check=False, quiet=True)
        if not output:
            return []
        return [name for name in output.splitlines() if name.startswith(prefix)]

    def refresh(self):
        run_command(["pacman", "-Sy", "--noconfirm"])

    def upgrade(self):
        run_command(["pacman", "-Syu", "--noconfirm"])

    def install(self, *packages):
        run_command(["pacman", "-S", "--noconfirm", "--needed", *packages])

    def install_file(self, path):
        run_command(["pacman", "-U", "--noconfirm", path])

    def remove(self, *packages, check=True):
        run_command(["pacman", "-Rns", "--noconfirm", *packages], check=check)


class AptManager(PackageManager):
    """Manages apt operations with caching"""

    name = "apt"
    _update_done: bool = False

    def is_installed(self, package):
        output = run_command(
            ["dpkg-query", "-W", "-f=${Status}", package],
            capture_output=True, check=False, quiet=True,
        )
        return bool(output) and "install ok installed" in output

    def installed_matching(self, prefix):
        """List installed package names starting with prefix"""
        output = run_command(
            ["dpkg-query", "-W", "-f=${Package} ${Status}\n", f"{prefix}*"],
            capture_output=True, check=False, quiet=True,
        )
        if not output:
            return []
        names = []
        for line in output.splitlines():
            name, _, status = line.partition(" ")
            if status.endswith("install ok installed"):
                names.append(name)
        return names

    def refresh(self):
        """Update apt cache if not already done"""
        if not AptManager._update_done:
            run_command(["apt-get", "update"])
            AptManager._update_done = True

    @classmethod
    def reset_cache(cls):
        """Reset the update cache so the next refresh() re-runs apt-get update.

        Call this after adding new repositories so packages from
        those repos can be discovered.
        """
        cls._update_done = False

    def upgrade(self):
        self.refresh()
        run_command(["apt-get", "dist-upgrade", "-y"],
                    env={"DEBIAN_FRONTEND": "noninteractive"})

    def install(self, *packages, extra_args=()):
        """Install packages using apt"""
        self.refresh()
        run_command(["apt-get", "install", "-y", *extra_args, *packages],
                    env={"DEBIAN_FRONTEND": "noninteractive"})

    def remove(self, *packages, check=True):
        run_command(["apt-get", "remove", "-y", *packages], check=check)

    def autoremove(self):
        """Remove unnecessary packages"""
        run_command(["apt-get", "autoremove", "-y"])
