"""
Tests for the self-updater: version check, artifact replacement and the
CLI-facing entry points.
"""

import http.client
import os
import sys
import urllib.error
import zipfile
from unittest import mock

import pytest

from post_linux import updater
from post_linux.errors import UpdateError
from post_linux.system.privilege import PrivilegeContext
from post_linux.updater import (
    InstallMethod,
    RestartRequest,
    SelfUpdater,
    UpdateState,
    VersionInfo,
    extract_version,
)


def _release(version: str) -> bytes:
    return f'"""post-linux"""\n\n__version__ = "{version}"\n'.encode()


def _zipapp(path, version="1.2"):
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("post_linux/__init__.py", f'__version__ = "{version}"\n')
        zf.writestr("__main__.py", "from post_linux.cli import main\nmain()\n")
    return str(path)


def _read(path) -> bytes:
    with open(path, "rb") as fh:
        return fh.read()


def _updater(remote: bytes = None, local="1.2", artifact="/nonexistent/post-linux.pyz", error=None):
    def fetch(url):
        if error is not None:
            raise error
        return remote

    return SelfUpdater(url="https://example.invalid/post-linux.pyz", local_version=local,
                       artifact=artifact, argv=["--update"], fetch=fetch)


# ── Version check ────────────────────────────────────────────────────


class TestExtractVersion:
    def test_double_quotes(self):
        assert extract_version(_release("0.7.1")) == "0.7.1"

    def test_single_quotes(self):
        assert extract_version(b"__version__ = '2.0'\n") == "2.0"

    def test_inside_binary_zip(self, tmp_path):
        path = _zipapp(tmp_path / "a.pyz", "3.1.4")
        with open(path, "rb") as fh:
            assert extract_version(fh.read()) == "3.1.4"

    def test_missing_marker(self):
        assert extract_version(b"<html>Not Found</html>") is None


class TestCheck:
    def test_newer_remote(self):
        u = _updater(_release("1.3"))
        info = u.check()
        assert info == VersionInfo(local="1.2", remote="1.3")
        assert info.update_available
        assert u.state is UpdateState.UPDATE_AVAILABLE

    def test_same_version(self):
        u = _updater(_release("1.2"))
        assert not u.check().update_available
        assert u.state is UpdateState.UP_TO_DATE

    def test_any_difference_is_an_update(self):
        assert _updater(_release("1.1")).check().update_available

    def test_missing_marker_is_up_to_date(self, capsys):
        info = _updater(b"nothing here").check()
        assert info.remote is None
        assert not info.update_available
        assert capsys.readouterr().out == ""

    def test_fetch_failure_silent_by_default(self, capsys):
        info = _updater(error=urllib.error.URLError("offline")).check()
        assert not info.update_available
        assert "Could not check" not in capsys.readouterr().out

    def test_fetch_failure_warns_on_request(self, capsys):
        _updater(error=urllib.error.URLError("offline")).check(warn=True)
        assert "Could not check for updates" in capsys.readouterr().out

    def test_truncated_download_is_up_to_date(self):
        u = _updater(error=http.client.IncompleteRead(b"partial"))
        info = u.check()
        assert not info.update_available
        assert u.state is UpdateState.UP_TO_DATE


class TestUpdateUrl:
    def test_default(self):
        assert updater.update_url({}) == updater.config.DEFAULT_UPDATE_URL

    def test_override(self):
        env = {updater.config.UPDATE_URL_ENV: "https://mirror.example/p.pyz"}
        assert updater.update_url(env) == "https://mirror.example/p.pyz"


class TestInstallMethod:
    def test_zipapp_is_artifact(self, tmp_path):
        assert updater.detect_install_method(_zipapp(tmp_path / "p.pyz")) is InstallMethod.ARTIFACT

    def test_module_is_package(self):
        assert updater.detect_install_method(updater.__file__) is InstallMethod.PACKAGE

    def test_missing_is_package(self, tmp_path):
        assert updater.detect_install_method(str(tmp_path / "gone")) is InstallMethod.PACKAGE


# ── Replacement ──────────────────────────────────────────────────────


class TestApply:
    def test_replaces_artifact_and_requests_restart(self, tmp_path):
        target = _zipapp(tmp_path / "post-linux.pyz", "1.2")
        new_payload = _read(_zipapp(tmp_path / "new.pyz", "1.3"))
        u = _updater(new_payload, artifact=target)

        request = u.apply()

        with open(target, "rb") as fh:
            assert fh.read() == new_payload
        assert os.stat(target).st_mode & 0o777 == 0o755
        assert request == RestartRequest(path=sys.executable, argv=[target, "--update"])
        assert u.state is UpdateState.REEXECUTING
        assert [p.name for p in tmp_path.iterdir() if p.name.startswith(".post-linux-")] == []

    def test_restores_original_owner(self, tmp_path, monkeypatch):
        target = _zipapp(tmp_path / "post-linux.pyz")
        st = os.stat(target)
        chown = mock.Mock()
        monkeypatch.setattr(updater.os, "chown", chown)
        _updater(_read(target), artifact=target).apply()
        chown.assert_called_once_with(target, st.st_uid, st.st_gid)

    def test_ownership_failure_only_warns(self, tmp_path, monkeypatch, capsys):
        target = _zipapp(tmp_path / "post-linux.pyz")
        monkeypatch.setattr(updater.os, "chown", mock.Mock(side_effect=PermissionError("denied")))
        request = _updater(_read(target), artifact=target).apply()
        assert isinstance(request, RestartRequest)
        assert "could not restore ownership" in capsys.readouterr().out

    def test_falls_back_to_invoking_user(self, tmp_path, monkeypatch):
        target = _zipapp(tmp_path / "post-linux.pyz")
        chown = mock.Mock()
        monkeypatch.setattr(updater.os, "chown", chown)
        monkeypatch.setattr(updater.pwd, "getpwnam", lambda name: mock.Mock(pw_uid=1000, pw_gid=1000))
        u = _updater(artifact=target)
        u._restore_ownership(None, PrivilegeContext(is_elevated=True, invoking_user="alice"))
        chown.assert_called_once_with(target, 1000, 1000)

    def test_no_owner_known(self, tmp_path, monkeypatch):
        chown = mock.Mock()
        monkeypatch.setattr(updater.os, "chown", chown)
        _updater()._restore_ownership(None, PrivilegeContext(is_elevated=True, invoking_user=None))
        chown.assert_not_called()

    def test_write_failure_is_fatal(self, tmp_path, monkeypatch):
        target = _zipapp(tmp_path / "post-linux.pyz")
        monkeypatch.setattr(updater.os, "replace", mock.Mock(side_effect=OSError("read-only")))
        with pytest.raises(UpdateError, match="Failed to replace"):
            _updater(b"payload", artifact=target).apply()
        assert [p.name for p in tmp_path.iterdir()] == ["post-linux.pyz"]

    def test_download_failure_is_fatal(self, tmp_path):
        target = _zipapp(tmp_path / "post-linux.pyz")
        with pytest.raises(UpdateError, match="Download failed"):
            _updater(error=urllib.error.URLError("offline"), artifact=target).apply()

    def test_truncated_download_is_fatal(self, tmp_path):
        target = _zipapp(tmp_path / "post-linux.pyz")
        with pytest.raises(UpdateError, match="Download failed"):
            _updater(error=http.client.IncompleteRead(b"partial"), artifact=target).apply()
        assert [p.name for p in tmp_path.iterdir()] == ["post-linux.pyz"]

    def test_package_install_cannot_self_replace(self):
        with pytest.raises(UpdateError, match="not a single-file release"):
            _updater(_release("1.3"), artifact=updater.__file__).apply()


# ── Entry points ─────────────────────────────────────────────────────


class TestEntryPoints:
    def test_check_only_never_mutates(self, monkeypatch, capsys):
        u = _updater(_release("1.3"))
        monkeypatch.setattr(u, "apply", mock.Mock(side_effect=AssertionError("mutated")))
        info = updater.run_check_only(u)
        assert info.update_available
        assert "Update available: 1.2 -> 1.3" in capsys.readouterr().out

    def test_run_update_noop_when_current(self):
        assert updater.run_update(updater=_updater(_release("1.2"))) is None

    def test_run_update_package_install_warns(self, capsys):
        u = _updater(_release("1.3"), artifact=updater.__file__)
        assert updater.run_update(updater=u) is None
        assert "upgrade it with pip" in capsys.readouterr().out

    def test_run_update_applies(self, tmp_path):
        target = _zipapp(tmp_path / "post-linux.pyz", "1.2")
        request = updater.run_update(updater=_updater(_release("1.3"), artifact=target))
        assert request.argv[0] == target

    def test_offer_declined_continues(self, monkeypatch):
        monkeypatch.setattr(updater, "prompt_yes_no", lambda prompt: False)
        u = _updater(_release("1.3"))
        monkeypatch.setattr(u, "apply", mock.Mock(side_effect=AssertionError("applied")))
        monkeypatch.setattr(updater.SelfUpdater, "install_method",
                            property(lambda self: InstallMethod.ARTIFACT))
        assert updater.offer_update(updater=u) is None

    def test_offer_silent_when_unreachable(self, monkeypatch, capsys):
        monkeypatch.setattr(updater, "prompt_yes_no", lambda prompt: pytest.fail("prompted"))
        u = _updater(error=urllib.error.URLError("offline"))
        assert updater.offer_update(updater=u) is None
        assert capsys.readouterr().out == ""

    def test_offer_continues_after_truncated_download(self, monkeypatch):
        monkeypatch.setattr(updater, "prompt_yes_no", lambda prompt: pytest.fail("prompted"))
        u = _updater(error=http.client.IncompleteRead(b"partial"))
        assert updater.offer_update(updater=u) is None
