"""Self-update module for post-linux.

Compares the running version with the one embedded in the published
release artifact and, when they differ, replaces the running zipapp in
place. Restarting is left to the caller: ``apply()`` returns a
``RestartRequest`` and never execs.
"""

import http.client
import os
import pwd
import re
import sys
import tempfile
import urllib.error
import urllib.request
import zipfile
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from . import __version__, config
from .errors import UpdateError
from .system.privilege import PrivilegeContext
from .utils.logging import log_info, log_warn, log_step, log_success
from .utils.prompts import prompt_yes_no

VERSION_MARKER = re.compile(r'__version__\s*=\s*["\']([^"\']+)["\']')


class InstallMethod(Enum):
    """How post-linux is being run."""
    ARTIFACT = "artifact"
    PACKAGE = "package"


class UpdateState(Enum):
    IDLE = "idle"
    CHECKING_REMOTE = "checking_remote"
    UP_TO_DATE = "up_to_date"
    UPDATE_AVAILABLE = "update_available"
    DOWNLOADING = "downloading"
    REPLACING = "replacing"
    REEXECUTING = "reexecuting"


@dataclass(frozen=True)
class VersionInfo:
    local: str
    remote: Optional[str]

    @property
    def update_available(self) -> bool:
        # Any difference counts, including a remote that sorts lower.
        return self.remote is not None and self.remote != self.local


@dataclass(frozen=True)
class RestartRequest:
    """Ask the supervisor to replace this process with ``path argv...``"""
    path: str
    argv: list[str]


def update_url(environ=None) -> str:
    if environ is None:
        environ = os.environ
    return environ.get(config.UPDATE_URL_ENV) or config.DEFAULT_UPDATE_URL


def running_artifact() -> str:
    return os.path.realpath(sys.argv[0])


def detect_install_method(path: str) -> InstallMethod:
    """Only a single-file zipapp can replace itself"""
    if os.path.isfile(path) and zipfile.is_zipfile(path):
        return InstallMethod.ARTIFACT
    return InstallMethod.PACKAGE


def fetch_remote(url: str, timeout: float = config.UPDATE_TIMEOUT) -> bytes:
    with urllib.request.urlopen(url, timeout=timeout) as response:
        return response.read()


def extract_version(payload: bytes) -> Optional[str]:
    """Find the ``__version__ = "x"`` marker in a downloaded artifact.

    The zipapp stores modules uncompressed when built with the default
    ``zipapp`` settings, so a plain text search is enough.
    """
    match = VERSION_MARKER.search(payload.decode('latin-1'))
    return match.group(1) if match else None


class SelfUpdater:
    """Check-and-replace state machine for the running artifact."""

    def __init__(self, url: Optional[str] = None, local_version: str = __version__,
                 artifact: Optional[str] = None, argv: Optional[list[str]] = None,
                 fetch: Callable[[str], bytes] = fetch_remote):
        self.url = url or update_url()
        self.local_version = local_version
        self.artifact = artifact or running_artifact()
        self.argv = list(sys.argv[1:] if argv is None else argv)
        self.fetch = fetch
        self.state = UpdateState.IDLE

    @property
    def install_method(self) -> InstallMethod:
        return detect_install_method(self.artifact)

    def check(self, warn: bool = False) -> VersionInfo:
        """Fetch the remote version. Never raises.

        Args:
            warn: Log a warning when the remote cannot be read.
        """
        self.state = UpdateState.CHECKING_REMOTE
        remote = None
        try:
            remote = extract_version(self.fetch(self.url))
            if remote is None and warn:
                log_warn(f"No version marker found at {self.url}")
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as e:
            if warn:
                log_warn(f"Could not check for updates: {e}")

        info = VersionInfo(local=self.local_version, remote=remote)
        self.state = UpdateState.UPDATE_AVAILABLE if info.update_available else UpdateState.UP_TO_DATE
        return info

    def apply(self, privilege: Optional[PrivilegeContext] = None) -> RestartRequest:
        """Download the release and move it over the running artifact.

        Raises:
            UpdateError: the artifact could not be downloaded or written.
        """
        if self.install_method is not InstallMethod.ARTIFACT:
            raise UpdateError(
                f"{self.artifact} is not a single-file release; "
                "update post-linux through the tool that installed it."
            )

        self.state = UpdateState.DOWNLOADING
        log_info(f"Downloading {self.url}")
        try:
            payload = self.fetch(self.url)
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as e:
            raise UpdateError(f"Download failed: {e}") from e

        self.state = UpdateState.REPLACING
        try:
            original = os.stat(self.artifact)
        except OSError:
            original = None
        self._replace(payload)
        self._restore_ownership(original, privilege)

        self.state = UpdateState.REEXECUTING
        return RestartRequest(path=sys.executable, argv=[self.artifact, *self.argv])

    def _replace(self, payload: bytes) -> None:
        directory = os.path.dirname(self.artifact)
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".post-linux-", suffix=".pyz", dir=directory)
        except OSError as e:
            raise UpdateError(f"Cannot write to {directory}: {e}") from e

        try:
            with os.fdopen(fd, 'wb') as fh:
                fh.write(payload)
            os.chmod(tmp_path, 0o755)
            os.replace(tmp_path, self.artifact)
        except OSError as e:
            try:
                os.remove(tmp_path)
            except OSError:
                pass
            raise UpdateError(f"Failed to replace {self.artifact}: {e}") from e

    def _restore_ownership(self, original, privilege: Optional[PrivilegeContext]) -> None:
        try:
            if original is not None:
                uid, gid = original.st_uid, original.st_gid
            elif privilege and privilege.is_elevated and privilege.invoking_user:
                entry = pwd.getpwnam(privilege.invoking_user)
                uid, gid = entry.pw_uid, entry.pw_gid
            else:
                return
            os.chown(self.artifact, uid, gid)
        except (KeyError, OSError) as e:
            log_warn(f"Updated, but could not restore ownership of {self.artifact}: {e}")


# ---------------------------------------------------------------------------
# Entry points used by the CLI
# ---------------------------------------------------------------------------

def run_check_only(updater: Optional[SelfUpdater] = None) -> VersionInfo:
    """Report whether an update exists. Never changes anything."""
    updater = updater or SelfUpdater()
    info = updater.check(warn=True)
    if info.update_available:
        log_info(f"Update available: {info.local} -> {info.remote}")
    elif info.remote is not None:
        log_success(f"post-linux {info.local} is up to date.")
    return info


def run_update(privilege: Optional[PrivilegeContext] = None,
               updater: Optional[SelfUpdater] = None) -> Optional[RestartRequest]:
    """Update now if there is anything to update"""
    log_step("Self-Update")
    updater = updater or SelfUpdater()
    info = updater.check(warn=True)
    if not info.update_available:
        log_success(f"post-linux {info.local} is up to date.")
        return None

    log_info(f"Updating {info.local} -> {info.remote}")
    if updater.install_method is not InstallMethod.ARTIFACT:
        log_warn("post-linux is installed as a Python package; upgrade it with pip instead.")
        return None

    request = updater.apply(privilege)
    log_success(f"Updated to {info.remote}.")
    return request


def offer_update(privilege: Optional[PrivilegeContext] = None,
                 updater: Optional[SelfUpdater] = None) -> Optional[RestartRequest]:
    """Ask before updating. The caller continues either way when None is returned."""
    updater = updater or SelfUpdater()
    info = updater.check()
    if not info.update_available:
        return None

    log_info(f"A new version of post-linux is available: {info.local} -> {info.remote}")
    if updater.install_method is not InstallMethod.ARTIFACT:
        log_info("Upgrade it with pip after this run.")
        return None
    if not prompt_yes_no("Update now?"):
        log_info("Update skipped.")
        return None

    request = updater.apply(privilege)
    log_success(f"Updated to {info.remote}. Restarting...")
    return request
