"""Selection of the pipeline for a run.

Each supported OS family has one fixed sequence of step groups. GPU
generation and desktop environment never change that sequence; they only
change what individual steps do when they run.
"""

from ..distros import arch, debian, fedora, mint, ubuntu
from ..errors import OsMismatchError
from ..system.facts import OsFamily, SystemFacts
from ..utils.system import PackageManager
from .model import GroupKind, Pipeline, Selections, StepGroup

_DISTROS = {
    OsFamily.FEDORA: fedora,
    OsFamily.ARCH: arch,
    OsFamily.UBUNTU: ubuntu,
    OsFamily.MINT: mint,
    OsFamily.DEBIAN: debian,
}

SUPPORTED = list(_DISTROS)

# Pipelines that build software as the unprivileged invoking user.
_BUILD_USER_FAMILIES = {OsFamily.ARCH}


def needs_build_user(os_family: OsFamily) -> bool:
    return os_family in _BUILD_USER_FAMILIES


def package_manager_for(os_family: OsFamily) -> PackageManager:
    return _DISTROS[os_family].package_manager()


def build_pipeline(os_family: OsFamily) -> Pipeline:
    """Assemble the groups for one family in GroupKind order"""
    by_kind = _DISTROS[os_family].steps()
    groups = tuple(StepGroup(kind, tuple(by_kind.get(kind, []))) for kind in GroupKind)
    return Pipeline(os=os_family, groups=groups)


def select(facts: SystemFacts, selections: Selections) -> Pipeline:
    """Return the pipeline for the selected OS.

    Raises:
        OsMismatchError: the machine is not the OS the user selected.
    """
    if facts.os_id is not selections.os:
        raise OsMismatchError(selections.os, facts.os_id)
    return build_pipeline(selections.os)
