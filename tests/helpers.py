"""Shared fakes and fixtures for installer tests.

Nothing here touches the real host: every path lives under a temporary root
and every collaborator that would run a command is replaced by a fake that
records what it was asked to do.
"""

import contextlib
import hashlib
import io
import logging
import os
import shutil
import tarfile
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from mediamtx_installer.host import HostServices
from mediamtx_installer.lib.command import CmdResult, CommandError
from mediamtx_installer.lib.fetch import ArtifactFetcher, NotFound, TransferFailed
from mediamtx_installer.lib.net import ConnectivityChecker
from mediamtx_installer.target import InstallationTarget

RELEASE_URL = "https://releases.example.test/mediamtx"
BINARY = b"#!/bin/sh\necho v1.12.2\n"


def sha256(data):
    return hashlib.sha256(data).hexdigest()


def make_tarball(binary=BINARY, *, member="mediamtx", extra=None):
    """Release-shaped .tar.gz bytes: the binary plus a couple of siblings."""

    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        entries = [(member, binary, 0o755), ("LICENSE", b"MIT\n", 0o644), ("mediamtx.yml", b"logLevel: info\n", 0o644)]
        entries += list(extra or [])
        for name, data, mode in entries:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = mode
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeDownloader:
    def __init__(self, files, *, name="fake", available=True, failures=0):
        self.name = name
        self.files = dict(files)
        self._available = available
        self.failures = failures
        self.calls = []

    def available(self):
        return self._available

    def download(self, url, dest, *, timeout):
        self.calls.append(url)
        if self.failures > 0:
            self.failures -= 1
            raise TransferFailed("connection reset")
        if url not in self.files:
            raise NotFound(url)
        dest.write_bytes(self.files[url])


class FakeServiceManager:
    name = "systemd"

    def __init__(self, fail=(), enabled=()):
        self.calls = []
        self.enabled = set(enabled)
        self.fail = set(fail)
        self.on_reload = None

    def _call(self, op, *args):
        self.calls.append((op,) + args)
        if op in self.fail:
            raise CommandError(["systemctl", op, *args], 1, f"{op} failed")

    def daemon_reload(self):
        self._call("daemon-reload")
        if self.on_reload is not None:
            self.on_reload()

    def enable(self, unit):
        self._call("enable", unit)
        self.enabled.add(unit)

    def disable(self, unit):
        self._call("disable", unit)
        self.enabled.discard(unit)

    def start(self, unit):
        self._call("start", unit)

    def is_enabled(self, unit):
        return unit in self.enabled


class FakeAccounts:
    def __init__(self, users=(), fail_create=False):
        self.users = set(users)
        self.fail_create = fail_create
        self.chowned = []

    def exists(self, name):
        return name in self.users

    def create_system_account(self, name):
        if self.fail_create:
            raise CommandError(["useradd", "--system", name], 9, "useradd: cannot lock /etc/passwd")
        self.users.add(name)

    def delete(self, name):
        self.users.discard(name)

    def ownership(self, path):
        st = Path(path).stat()
        return st.st_uid, st.st_gid

    def chown(self, path, *, user=None, uid=None, gid=None):
        self.chowned.append((Path(path), user, uid, gid))


def make_target(root, **overrides):
    root = Path(root)
    values = dict(
        version="v1.12.2",
        arch="amd64",
        install_dir=root / "usr/local/mediamtx",
        config_dir=root / "etc/mediamtx",
        log_dir=root / "var/log/mediamtx",
        backup_dir=root / "var/backups/mediamtx",
        unit_dir=root / "etc/systemd/system",
        release_url=RELEASE_URL,
        release_api_url="",
        state_path=root.parent / "state" / "state.json",
        log_path=root.parent / "install.log",
    )
    values.update(overrides)
    return InstallationTarget(**values)


def make_host(target, *, manifest=True, tamper=False, services=None, accounts=None, confirm=False, tarball=None):
    data = tarball if tarball is not None else make_tarball()
    files = {target.artifact_url: data}
    if manifest:
        digest = "0" * 64 if tamper else sha256(data)
        files[target.manifest_url] = (
            f"{sha256(b'other')}  mediamtx_{target.version}_linux_arm64.tar.gz\n"
            f"{digest}  {target.artifact_name}\n"
        ).encode()
    return HostServices(
        which=lambda cmd: f"/usr/bin/{cmd}",
        machine=lambda: "x86_64",
        package_manager=None,
        service_manager=services if services is not None else FakeServiceManager(),
        accounts=accounts if accounts is not None else FakeAccounts(),
        connectivity=ConnectivityChecker(probes=[("fake", lambda url: True)]),
        fetcher=ArtifactFetcher(downloaders=[FakeDownloader(files)], sleep=lambda s: None),
        release_check=lambda api_url, version: None,
        confirm=lambda question, default: confirm,
    )


def snapshot(root):
    """Every path under root with its mode, and contents for files."""

    result = {}
    root = Path(root)
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            p = Path(dirpath) / name
            st = p.lstat()
            rel = str(p.relative_to(root))
            if p.is_dir():
                result[rel] = ("dir", st.st_mode)
            else:
                result[rel] = ("file", st.st_mode, p.read_bytes())
    return result


def populate_existing(target, *, binary=b"#!/bin/sh\necho v1.9.0\n", config=b"logLevel: debug\n", unit=b"[Unit]\nDescription=old\n"):
    """Lay down a previous installation under the target's paths."""

    for path, data, mode in (
        (target.binary_path, binary, 0o755),
        (target.config_path, config, 0o640),
        (target.unit_path, unit, 0o644),
    ):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        path.chmod(mode)


@contextlib.contextmanager
def fake_version_command(stdout="v1.12.2", returncode=0):
    """Stand in for `mediamtx --version` so tests never execute a binary."""

    def fake(argv, **kwargs):
        return CmdResult(argv=list(argv), returncode=returncode, stdout=stdout + "\n", stderr="")

    with mock.patch("mediamtx_installer.steps.step_50_install_binary.run_cmd", side_effect=fake) as install, \
            mock.patch("mediamtx_installer.steps.step_25_detect_existing.run_cmd", side_effect=fake):
        yield install


def reset_logging():
    root = logging.getLogger()
    for h in getattr(root, "_mediamtx_handlers", []):
        root.removeHandler(h)
        h.close()
    root._mediamtx_handlers = []


class InstallerTestCase(unittest.TestCase):
    """Gives each test its own host root under a temporary directory."""

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp(prefix="mediamtx-test-"))
        self.root = self.tmp / "root"
        self.root.mkdir()
        self.work = self.tmp / "work"
        self.work.mkdir()
        self.addCleanup(shutil.rmtree, self.tmp, True)
        self.addCleanup(reset_logging)
