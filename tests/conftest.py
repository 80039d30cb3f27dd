"""
Shared test fixtures and configuration.
"""

import pytest

from post_linux.pipeline.model import GpuGeneration, RunContext, Selections
from post_linux.system.facts import DesktopEnv, OsFamily, SystemFacts
from post_linux.system.privilege import PrivilegeContext
from post_linux.utils.system import AptManager, PackageManager


class FakePackageManager(PackageManager):
    """In-memory package database; records every mutating call."""

    name = "fake"

    def __init__(self, installed=()):
        self.installed = set(installed)
        self.groups: set[str] = set()
        self.calls: list[tuple] = []

    def is_installed(self, package):
        return package in self.installed

    def installed_matching(self, prefix):
        return sorted(p for p in self.installed if p.startswith(prefix))

    def refresh(self):
        self.calls.append(("refresh",))

    def upgrade(self):
        self.calls.append(("upgrade",))

    def install(self, *packages, extra_args=()):
        self.calls.append(("install", *packages))
        self.installed.update(p for p in packages if not p.startswith("-"))

    def install_file(self, path):
        self.calls.append(("install_file", path))

    def group_installed(self, group):
        return group in self.groups

    def install_group(self, group):
        self.calls.append(("install_group", group))
        self.groups.add(group)

    def remove(self, *packages, check=True):
        self.calls.append(("remove", *packages))
        self.installed.difference_update(packages)

    def autoremove(self):
        self.calls.append(("autoremove",))

    @property
    def installs(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "install"]


@pytest.fixture
def packages() -> FakePackageManager:
    return FakePackageManager()


@pytest.fixture
def make_context(packages):
    """Build a RunContext; keyword arguments override the defaults."""

    def factory(os_family=OsFamily.UBUNTU, desktop=DesktopEnv.GNOME,
                generation=GpuGeneration.MODERN, driver_active=False,
                invoking_user="alice", package_manager=None):
        facts = SystemFacts(os_id=os_family, desktop_env=desktop,
                            driver_already_active=driver_active)
        return RunContext(
            facts=facts,
            selections=Selections(os=os_family, gpu_generation=generation),
            privilege=PrivilegeContext(is_elevated=True, invoking_user=invoking_user),
            packages=package_manager or packages,
        )

    return factory


@pytest.fixture(autouse=True)
def _reset_apt_cache():
    AptManager.reset_cache()
    yield
    AptManager.reset_cache()
