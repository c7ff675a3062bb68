import unittest
from unittest import mock

from mediamtx_installer import main as installer_main
from mediamtx_installer.state_store import install_lock
from mediamtx_installer.target import DEFAULT_RELEASE_URL

from tests.helpers import InstallerTestCase, fake_version_command, make_host, make_target


class TestMainExitCodes(InstallerTestCase):
    def setUp(self):
        super().setUp()
        self.environ = {
            "MEDIAMTX_INSTALL_LOG": str(self.tmp / "install.log"),
            "MEDIAMTX_STATE_FILE": str(self.tmp / "state" / "state.json"),
        }
        # Hosts here are only used for dry runs or fail before touching anything.
        self.host = make_host(make_target(self.root))

    def test_requires_root_without_dry_run(self):
        with mock.patch("mediamtx_installer.main.os.geteuid", return_value=1000):
            code = installer_main.main([], host=self.host, environ=self.environ)
        self.assertEqual(code, 5)
        self.assertIn("InsufficientPermissions: This installer must be run as root", (self.tmp / "install.log").read_text())

    def test_unsupported_architecture(self):
        code = installer_main.main(["--dry-run", "--arch", "sparc64"], host=self.host, environ=self.environ)
        self.assertEqual(code, 2)

    def test_detected_architecture_unsupported(self):
        self.host.machine = lambda: "mips"
        self.host.which = lambda cmd: None
        code = installer_main.main(["--dry-run"], host=self.host, environ=self.environ)
        self.assertEqual(code, 2)

    def test_invalid_port_is_config_error(self):
        environ = dict(self.environ, MEDIAMTX_RTSP_PORT="rtsp")
        code = installer_main.main(["--dry-run"], host=self.host, environ=environ)
        self.assertEqual(code, 7)

    def test_relative_config_file_is_config_error(self):
        environ = dict(self.environ, MEDIAMTX_CONFIG_FILE="mediamtx.yml")
        code = installer_main.main(["--dry-run"], host=self.host, environ=environ)
        self.assertEqual(code, 7)

    def test_dry_run_exits_zero(self):
        # The fake host serves artifacts at the default release URL the CLI resolves to.
        host = make_host(make_target(self.root, release_url=DEFAULT_RELEASE_URL))
        with fake_version_command():
            code = installer_main.main(["--dry-run", "--arch", "amd64"], host=host, environ=self.environ)
        self.assertEqual(code, 0)
        self.assertIn("DRY RUN", (self.tmp / "install.log").read_text())
        self.assertFalse((self.tmp / "state" / "state.json").exists())

    def test_second_run_is_locked_out(self):
        state = self.environ["MEDIAMTX_STATE_FILE"]
        with install_lock(state), mock.patch("mediamtx_installer.main.os.geteuid", return_value=0):
            code = installer_main.main([], host=self.host, environ=self.environ)
        self.assertEqual(code, 1)
        self.assertIn("Another installation is already running", (self.tmp / "install.log").read_text())


class TestParser(unittest.TestCase):
    def test_flags(self):
        args = installer_main.build_parser().parse_args(
            ["--version", "v1.9.3", "--arch", "arm64", "--force", "--require-checksum", "--no-start"]
        )
        self.assertEqual(args.version, "v1.9.3")
        self.assertEqual(args.arch, "arm64")
        self.assertTrue(args.force)
        self.assertTrue(args.require_checksum)
        self.assertIs(args.start, False)

    def test_start_defaults_to_ask(self):
        self.assertIsNone(installer_main.build_parser().parse_args([]).start)


if __name__ == "__main__":
    unittest.main()
