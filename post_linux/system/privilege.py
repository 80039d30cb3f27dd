"""Elevation and recovery of the invoking (pre-sudo) user"""

import os
import pwd
import sys
from dataclasses import dataclass
from typing import Optional

from ..errors import PrivilegeError
from ..utils.logging import log_info, log_warn


@dataclass(frozen=True)
class PrivilegeContext:
    is_elevated: bool
    invoking_user: Optional[str]


def ensure_elevated(argv: list[str]) -> None:
    """Re-execute the current command under sudo unless already root.

    ``argv`` is the interpreter command line without the interpreter itself
    (``sys.orig_argv[1:]``), so ``-m post_linux`` invocations survive.
    ``-E`` keeps the session variables desktop detection relies on.
    """
    if os.geteuid() == 0:
        return
    log_warn("This script needs root. Re-running with sudo...")
    os.execvp("sudo", ["sudo", "-E", sys.executable, *argv])


def _user_from_uid(uid: str) -> Optional[str]:
    try:
        return pwd.getpwuid(int(uid)).pw_name
    except (KeyError, ValueError):
        return None


def find_invoking_user(environ) -> Optional[str]:
    """Recover who ran sudo/pkexec, from the elevation tool's own record.

    root is never accepted: build steps must run as a real person.
    """
    candidate = environ.get("SUDO_USER")
    if not candidate and environ.get("PKEXEC_UID"):
        candidate = _user_from_uid(environ["PKEXEC_UID"])
    if not candidate or candidate == "root":
        return None
    return candidate


def resolve(require_invoking_user: bool = False, environ=None, euid=None) -> PrivilegeContext:
    """Resolve the privilege context once for the whole run.

    Args:
        require_invoking_user: Raise PrivilegeError when no non-root
            invoking user can be recovered.
        environ: Environment mapping (defaults to os.environ)
        euid: Effective uid (defaults to os.geteuid())

    Raises:
        PrivilegeError: if a build user is required but none is known.
    """
    if environ is None:
        environ = os.environ
    if euid is None:
        euid = os.geteuid()

    elevated = euid == 0
    if elevated:
        user = find_invoking_user(environ)
    else:
        user = environ.get("USER") or _user_from_uid(str(euid))

    context = PrivilegeContext(is_elevated=elevated, invoking_user=user)
    if require_invoking_user:
        require_build_user(context)

    if user:
        log_info(f"Invoking user: {user}")
    return context


def require_build_user(context: PrivilegeContext) -> str:
    """Return the invoking user or raise PrivilegeError"""
    if not context.invoking_user:
        raise PrivilegeError(
            "Cannot determine a non-root user to build packages as. "
            "Please run this script with sudo from your regular user."
        )
    return context.invoking_user
