import argparse
import unittest
from pathlib import Path

from mediamtx_installer.errors import ConfigError
from mediamtx_installer.target import DEFAULT_VERSION, InstallationTarget, build_target


def args(**kw):
    base = dict(version=None, arch=None, dry_run=False, force=False, debug=False, require_checksum=False, log=None, state=None)
    base.update(kw)
    return argparse.Namespace(**base)


class TestBuildTarget(unittest.TestCase):
    def test_defaults(self):
        t = build_target(args(), {})
        self.assertEqual(t.version, DEFAULT_VERSION)
        self.assertEqual(t.binary_path, Path("/usr/local/mediamtx/mediamtx"))
        self.assertEqual(t.config_path, Path("/etc/mediamtx/mediamtx.yml"))
        self.assertEqual(t.ports.as_dict(), {"rtsp": 18554, "rtmp": 11935, "hls": 18888, "webrtc": 18889, "metrics": 19999})
        self.assertRegex(t.log_path.name, r"^install_\d{8}_\d{6}\.log$")

    def test_environment_layer(self):
        env = {
            "MEDIAMTX_VERSION": "v1.9.0",
            "MEDIAMTX_CONFIG_FILE": "/opt/mtx/custom.yml",
            "MEDIAMTX_INSTALL_LOG": "/tmp/mtx.log",
            "MEDIAMTX_RTSP_PORT": "8554",
            "MEDIAMTX_STATE_FILE": "/tmp/state.yaml",
        }
        t = build_target(args(), env)
        self.assertEqual(t.version, "v1.9.0")
        self.assertEqual(t.config_path, Path("/opt/mtx/custom.yml"))
        self.assertEqual(t.log_path, Path("/tmp/mtx.log"))
        self.assertEqual(t.ports.rtsp, 8554)
        self.assertEqual(t.state_path, Path("/tmp/state.yaml"))

    def test_cli_beats_environment(self):
        t = build_target(args(version="v1.12.0", log="/var/tmp/x.log"), {"MEDIAMTX_VERSION": "v1.9.0", "MEDIAMTX_INSTALL_LOG": "/tmp/y.log"})
        self.assertEqual(t.version, "v1.12.0")
        self.assertEqual(t.log_path, Path("/var/tmp/x.log"))

    def test_flags(self):
        t = build_target(args(dry_run=True, force=True, require_checksum=True, arch="arm64"), {})
        self.assertTrue(t.dry_run and t.force and t.require_checksum)
        self.assertEqual(t.arch, "arm64")

    def test_mirror_disables_release_api(self):
        t = build_target(args(arch="amd64"), {"MEDIAMTX_RELEASE_URL": "https://mirror.example.test/mtx/"})
        self.assertEqual(t.release_api_url, "")
        self.assertEqual(
            t.artifact_url,
            f"https://mirror.example.test/mtx/{DEFAULT_VERSION}/mediamtx_{DEFAULT_VERSION}_linux_amd64.tar.gz",
        )
        self.assertEqual(t.manifest_url, f"https://mirror.example.test/mtx/{DEFAULT_VERSION}/checksums.txt")

    def test_relative_config_file_rejected(self):
        for value in ("mediamtx.yml", "conf/mediamtx.yml", "./mediamtx.yml"):
            with self.subTest(value=value), self.assertRaises(ConfigError) as cm:
                build_target(args(), {"MEDIAMTX_CONFIG_FILE": value})
            self.assertEqual(cm.exception.exit_code, 7)

    def test_bad_ports(self):
        for value in ("abc", "0", "70000"):
            with self.subTest(value=value), self.assertRaises(ConfigError):
                build_target(args(), {"MEDIAMTX_HLS_PORT": value})

    def test_duplicate_ports(self):
        with self.assertRaises(ConfigError):
            build_target(args(), {"MEDIAMTX_RTMP_PORT": "18554"})

    def test_frozen(self):
        t = InstallationTarget()
        with self.assertRaises(Exception):
            t.version = "v0"


if __name__ == "__main__":
    unittest.main()
