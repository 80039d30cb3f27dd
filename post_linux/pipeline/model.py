"""Values that describe a provisioning run"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .. import config
from ..system.facts import OsFamily, SystemFacts
from ..system.privilege import PrivilegeContext
from ..utils.system import PackageManager


class GpuGeneration(Enum):
    """User-declared NVIDIA generation.

    MODERN gets the open kernel modules, LEGACY the proprietary ones.
    """
    MODERN = "modern"
    LEGACY = "legacy"


@dataclass(frozen=True)
class Selections:
    os: OsFamily
    gpu_generation: GpuGeneration


class StepOutcome(Enum):
    DONE = "done"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class RunContext:
    """Everything a step may look at. Passed explicitly to every action."""
    facts: SystemFacts
    selections: Selections
    privilege: PrivilegeContext
    packages: PackageManager


StepAction = Callable[[RunContext], Optional[StepOutcome]]


@dataclass(frozen=True)
class Step:
    label: str
    action: StepAction
    best_effort: bool = False


@dataclass(frozen=True)
class BackgroundStep(Step):
    """A step whose action starts a long-running process and returns it.

    The runner waits for the returned ``subprocess.Popen`` for at most
    ``timeout`` seconds, then moves on and leaves it running. An action may
    return a StepOutcome instead when there is nothing to wait for.
    """
    timeout: float = config.BACKGROUND_BUILD_TIMEOUT
    poll_interval: float = config.BACKGROUND_POLL_INTERVAL


class GroupKind(Enum):
    """Step groups, in the order every pipeline runs them."""
    UPDATE = "System update"
    REPO_ENABLE = "Repository setup"
    DRIVER_INSTALL = "NVIDIA driver"
    POST_INSTALL = "Post-install"
    APP_STORE = "Flatpak / app store"
    MEDIA = "Media & codecs"
    HW_ACCEL = "Hardware acceleration"
    ARCHIVE_TOOLS = "Archive tools"
    BROWSER = "Browser"
    DESKTOP_TUNE = "Desktop cleanup & theming"


@dataclass(frozen=True)
class StepGroup:
    kind: GroupKind
    steps: tuple[Step, ...] = ()


@dataclass(frozen=True)
class Pipeline:
    os: OsFamily
    groups: tuple[StepGroup, ...]

    @property
    def group_kinds(self) -> list[GroupKind]:
        return [group.kind for group in self.groups]


@dataclass
class RunResult:
    completed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
