import unittest
from unittest import mock

from mediamtx_installer.errors import UnsupportedArchitecture
from mediamtx_installer.lib import hwdetect
from mediamtx_installer.lib.command import CmdResult


def no_tools(cmd):
    return None


class TestNormalizeArch(unittest.TestCase):
    def test_known_machines(self):
        cases = {
            "x86_64": "amd64",
            "aarch64": "arm64",
            "arm64": "arm64",
            "armv7l": "armv7",
            "armv6l": "armv6",
            "armhf": "armv7",
        }
        for machine, expected in cases.items():
            with self.subTest(machine=machine):
                self.assertEqual(hwdetect.normalize_arch(machine), expected)

    def test_unknown_machine(self):
        self.assertIsNone(hwdetect.normalize_arch("riscv64"))


class TestDetectArch(unittest.TestCase):
    def test_uname_wins(self):
        self.assertEqual(hwdetect.detect_arch(machine="aarch64", which=no_tools), "arm64")

    def test_dpkg_fallback(self):
        result = CmdResult(argv=["dpkg"], returncode=0, stdout="armhf\n", stderr="")
        with mock.patch("mediamtx_installer.lib.hwdetect.run_cmd", return_value=result):
            arch = hwdetect.detect_arch(machine="armv8b", which=lambda cmd: "/usr/bin/dpkg")
        self.assertEqual(arch, "armv7")

    def test_unsupported(self):
        with self.assertRaises(UnsupportedArchitecture) as cm:
            hwdetect.detect_arch(machine="mips", which=no_tools)
        self.assertEqual(cm.exception.exit_code, 2)
        self.assertIn("mips", str(cm.exception))


class TestResolveArch(unittest.TestCase):
    def test_override_accepts_tags_and_machine_names(self):
        self.assertEqual(hwdetect.resolve_arch("armv6", machine="x86_64", which=no_tools), "armv6")
        self.assertEqual(hwdetect.resolve_arch("x86_64", machine="aarch64", which=no_tools), "amd64")

    def test_bad_override(self):
        with self.assertRaises(UnsupportedArchitecture):
            hwdetect.resolve_arch("sparc", machine="x86_64", which=no_tools)

    def test_no_override_detects(self):
        self.assertEqual(hwdetect.resolve_arch(None, machine="x86_64", which=no_tools), "amd64")


if __name__ == "__main__":
    unittest.main()
