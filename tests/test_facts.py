"""
Tests for machine fact detection.
"""

import pytest

from post_linux.system import facts
from post_linux.system.facts import (
    DesktopEnv,
    OsFamily,
    detect_desktop,
    detect_os,
    match_desktop,
    match_os_family,
)

# ── OS identity ──────────────────────────────────────────────────────


class TestMatchOsFamily:
    @pytest.mark.parametrize("os_id, id_like, expected", [
        ("fedora", "", OsFamily.FEDORA),
        ("arch", "", OsFamily.ARCH),
        ("ubuntu", "debian", OsFamily.UBUNTU),
        ("linuxmint", "ubuntu debian", OsFamily.MINT),
        ("debian", "", OsFamily.DEBIAN),
        ("pop", "ubuntu debian", OsFamily.UBUNTU),
        ("manjaro", "arch", OsFamily.ARCH),
        ("nobara", "fedora", OsFamily.FEDORA),
        ("gentoo", "", OsFamily.UNKNOWN),
    ])
    def test_families(self, os_id, id_like, expected):
        assert match_os_family(os_id, id_like) is expected

    def test_exact_id_beats_id_like(self):
        # Ubuntu lists debian in ID_LIKE but must stay Ubuntu.
        assert match_os_family("ubuntu", "debian") is OsFamily.UBUNTU


class TestDetectOs:
    def test_reads_os_release(self, tmp_path):
        os_release = tmp_path / "os-release"
        os_release.write_text(
            'NAME="Linux Mint"\nID=linuxmint\nID_LIKE="ubuntu debian"\n'
            'PRETTY_NAME="Linux Mint 22.1"\n'
        )
        family, pretty = detect_os(str(os_release), str(tmp_path / "missing"))
        assert family is OsFamily.MINT
        assert pretty == "Linux Mint 22.1"

    def test_falls_back_to_lsb_release(self, tmp_path):
        lsb = tmp_path / "lsb-release"
        lsb.write_text('DISTRIB_ID=Ubuntu\nDISTRIB_DESCRIPTION="Ubuntu 24.04 LTS"\n')
        family, pretty = detect_os(str(tmp_path / "missing"), str(lsb))
        assert family is OsFamily.UBUNTU
        assert pretty == "Ubuntu 24.04 LTS"

    def test_nothing_readable(self, tmp_path):
        family, pretty = detect_os(str(tmp_path / "a"), str(tmp_path / "b"))
        assert family is OsFamily.UNKNOWN
        assert pretty == "Unknown OS"


# ── Desktop environment ──────────────────────────────────────────────


class TestMatchDesktop:
    @pytest.mark.parametrize("text, expected", [
        ("X-Cinnamon", DesktopEnv.CINNAMON),
        ("KDE", DesktopEnv.KDE),
        ("plasmawayland", DesktopEnv.KDE),
        ("ubuntu:GNOME", DesktopEnv.GNOME),
        ("XFCE", DesktopEnv.UNKNOWN),
        ("", DesktopEnv.UNKNOWN),
    ])
    def test_match(self, text, expected):
        assert match_desktop(text) is expected

    def test_cinnamon_checked_before_gnome(self):
        assert match_desktop("X-Cinnamon:GNOME") is DesktopEnv.CINNAMON


class TestDetectDesktop:
    def test_environment_wins(self, monkeypatch):
        monkeypatch.setattr(facts, "_loginctl_session_desktop", lambda: pytest.fail("not called"))
        assert detect_desktop({"XDG_CURRENT_DESKTOP": "KDE"}) is DesktopEnv.KDE

    def test_desktop_session_used(self, monkeypatch):
        monkeypatch.setattr(facts, "_loginctl_session_desktop", lambda: "")
        assert detect_desktop({"DESKTOP_SESSION": "gnome"}) is DesktopEnv.GNOME

    def test_loginctl_fallback(self, monkeypatch):
        monkeypatch.setattr(facts, "_loginctl_session_desktop",
                            lambda: "Desktop=KDE\nType=wayland")
        assert detect_desktop({}) is DesktopEnv.KDE

    def test_unknown_when_nothing_matches(self, monkeypatch):
        monkeypatch.setattr(facts, "_loginctl_session_desktop", lambda: "Type=tty")
        assert detect_desktop({}) is DesktopEnv.UNKNOWN


class TestLoginctl:
    def test_first_session_queried(self, monkeypatch):
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd)
            if cmd[1] == "list-sessions":
                return "3 1000 alice seat0 tty2\n7 1001 bob"
            return "Desktop=GNOME\nType=wayland"

        monkeypatch.setattr(facts, "run_command", fake_run)
        assert facts._loginctl_session_desktop() == "Desktop=GNOME\nType=wayland"
        assert calls[1][:3] == ["loginctl", "show-session", "3"]

    def test_missing_loginctl(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise FileNotFoundError("loginctl")

        monkeypatch.setattr(facts, "run_command", fake_run)
        assert facts._loginctl_session_desktop() == ""


# ── Driver probe and full detection ──────────────────────────────────


class TestDetect:
    def test_driver_active_follows_nvidia_smi(self, monkeypatch):
        monkeypatch.setattr(facts, "command_succeeds", lambda cmd: cmd == ["nvidia-smi"])
        assert facts.nvidia_driver_active() is True

        monkeypatch.setattr(facts, "command_succeeds", lambda cmd: False)
        assert facts.nvidia_driver_active() is False

    def test_detect_freezes_all_signals(self, monkeypatch):
        monkeypatch.setattr(facts, "detect_os", lambda: (OsFamily.FEDORA, "Fedora Linux 42"))
        monkeypatch.setattr(facts, "nvidia_driver_active", lambda: False)
        result = facts.detect({"XDG_CURRENT_DESKTOP": "GNOME"})
        assert result.os_id is OsFamily.FEDORA
        assert result.desktop_env is DesktopEnv.GNOME
        assert result.driver_already_active is False
        assert result.os_pretty_name == "Fedora Linux 42"

    def test_unknown_os_warns(self, monkeypatch, capsys):
        monkeypatch.setattr(facts, "detect_os", lambda: (OsFamily.UNKNOWN, "Gentoo"))
        monkeypatch.setattr(facts, "nvidia_driver_active", lambda: False)
        monkeypatch.setattr(facts, "_loginctl_session_desktop", lambda: "")
        result = facts.detect({})
        assert result.os_id is OsFamily.UNKNOWN
        assert result.desktop_env is DesktopEnv.UNKNOWN
        assert "Could not match Gentoo" in capsys.readouterr().out
