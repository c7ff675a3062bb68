import unittest
from unittest import mock

from mediamtx_installer.errors import DependencyError
from mediamtx_installer.lib import pkg
from mediamtx_installer.lib.command import CmdResult, CommandError


class FakeManager:
    name = "fake"

    def __init__(self, present, provides=None, broken=()):
        self.present = present
        self.provides = provides or {}
        self.broken = set(broken)
        self.installs = []
        self.updated = False

    def update(self):
        self.updated = True

    def install(self, packages):
        self.installs.append(list(packages))
        if self.broken.intersection(packages):
            raise CommandError(["fake-install", *packages], 100, "no such package")
        for p in packages:
            self.present.update(self.provides.get(p, [p]))

    def package_for(self, command):
        return {"useradd": "passwd", "userdel": "passwd"}.get(command, command)


class TestDetectPackageManager(unittest.TestCase):
    def test_prefers_dnf_over_yum(self):
        pm = pkg.detect_package_manager(lambda cmd: cmd in {"dnf", "yum"} or None)
        self.assertEqual(pm.name, "dnf")

    def test_none_found(self):
        self.assertIsNone(pkg.detect_package_manager(lambda cmd: None))

    def test_dnf_check_update_100_is_ok(self):
        result = CmdResult(argv=["dnf"], returncode=100, stdout="", stderr="")
        with mock.patch("mediamtx_installer.lib.pkg.run_cmd", return_value=result):
            pkg.dnf_manager().update()

    def test_apt_update_failure_raises(self):
        result = CmdResult(argv=["apt-get"], returncode=100, stdout="", stderr="E: failed")
        with mock.patch("mediamtx_installer.lib.pkg.run_cmd", return_value=result):
            with self.assertRaises(CommandError):
                pkg.apt_manager().update()


class TestEnsureCommands(unittest.TestCase):
    def test_all_present(self):
        present = {"systemctl", "useradd", "userdel", "curl", "wget"}
        report = pkg.ensure_commands(manager=None, which=lambda c: c in present or None)
        self.assertEqual(report.installed, [])
        self.assertEqual(report.missing_optional, [])

    def test_installs_missing(self):
        present = {"systemctl", "curl", "wget"}
        manager = FakeManager(present, provides={"passwd": ["useradd", "userdel"]})
        report = pkg.ensure_commands(manager=manager, which=lambda c: c in present or None)
        self.assertTrue(manager.updated)
        self.assertEqual(manager.installs, [["passwd"]])
        self.assertEqual(report.installed, ["useradd", "userdel"])

    def test_falls_back_to_individual_installs(self):
        present = {"systemctl", "useradd", "userdel"}
        manager = FakeManager(present, broken={"wget"})
        report = pkg.ensure_commands(manager=manager, which=lambda c: c in present or None)
        self.assertEqual(manager.installs, [["curl", "wget"], ["curl"], ["wget"]])
        self.assertEqual(report.missing_optional, ["wget"])

    def test_missing_required_without_manager(self):
        with self.assertRaises(DependencyError) as cm:
            pkg.ensure_commands(manager=None, which=lambda c: None if c == "systemctl" else "/bin/" + c)
        self.assertIn("systemctl", str(cm.exception))

    def test_missing_optional_without_manager_is_a_warning(self):
        present = {"systemctl", "useradd", "userdel"}
        with self.assertLogs("mediamtx_installer.lib.pkg", level="WARNING"):
            report = pkg.ensure_commands(manager=None, which=lambda c: c in present or None)
        self.assertEqual(report.missing_optional, ["curl", "wget"])

    def test_required_still_missing_after_install(self):
        present = {"useradd", "userdel", "curl", "wget"}
        manager = FakeManager(present, broken={"systemctl"})
        with self.assertRaises(DependencyError):
            pkg.ensure_commands(manager=manager, which=lambda c: c in present or None)


if __name__ == "__main__":
    unittest.main()
