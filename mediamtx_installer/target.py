from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from .errors import ConfigError

DEFAULT_VERSION = "v1.12.2"
DEFAULT_RELEASE_URL = "https://github.com/bluenviron/mediamtx/releases/download"
DEFAULT_RELEASE_API_URL = "https://api.github.com/repos/bluenviron/mediamtx/releases/tags"
DEFAULT_LOG_DIR = "/var/log/mediamtx-installer"
DEFAULT_STATE_PATH = "/var/lib/mediamtx-installer/state.json"


@dataclass(frozen=True)
class Ports:
    rtsp: int = 18554
    rtmp: int = 11935
    hls: int = 18888
    webrtc: int = 18889
    metrics: int = 19999

    def as_dict(self) -> dict[str, int]:
        return {
            "rtsp": self.rtsp,
            "rtmp": self.rtmp,
            "hls": self.hls,
            "webrtc": self.webrtc,
            "metrics": self.metrics,
        }


@dataclass(frozen=True)
class InstallationTarget:
    """Everything one run needs to know about where and what to install."""

    version: str = DEFAULT_VERSION
    arch: Optional[str] = None
    install_dir: Path = Path("/usr/local/mediamtx")
    config_dir: Path = Path("/etc/mediamtx")
    config_name: str = "mediamtx.yml"
    log_dir: Path = Path("/var/log/mediamtx")
    backup_dir: Path = Path("/var/backups/mediamtx")
    unit_dir: Path = Path("/etc/systemd/system")
    unit_name: str = "mediamtx.service"
    binary_name: str = "mediamtx"
    service_user: str = "mediamtx"
    ports: Ports = field(default_factory=Ports)
    release_url: str = DEFAULT_RELEASE_URL
    release_api_url: str = DEFAULT_RELEASE_API_URL
    state_path: Path = Path(DEFAULT_STATE_PATH)
    log_path: Optional[Path] = None
    dry_run: bool = False
    force: bool = False
    debug: bool = False
    require_checksum: bool = False

    @property
    def binary_path(self) -> Path:
        return self.install_dir / self.binary_name

    @property
    def config_path(self) -> Path:
        return self.config_dir / self.config_name

    @property
    def unit_path(self) -> Path:
        return self.unit_dir / self.unit_name

    @property
    def artifact_name(self) -> str:
        return f"mediamtx_{self.version}_linux_{self.arch}.tar.gz"

    @property
    def artifact_url(self) -> str:
        return f"{self.release_url.rstrip('/')}/{self.version}/{self.artifact_name}"

    @property
    def manifest_url(self) -> str:
        return f"{self.release_url.rstrip('/')}/{self.version}/checksums.txt"


def default_log_path(log_dir: str = DEFAULT_LOG_DIR) -> Path:
    return Path(log_dir) / time.strftime("install_%Y%m%d_%H%M%S.log")


def _port(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer port, got {raw!r}") from e
    if not 0 < value < 65536:
        raise ConfigError(f"{name} out of range: {value}")
    return value


def build_target(args: Any, environ: Mapping[str, str] | None = None) -> InstallationTarget:
    """Layer defaults, environment and CLI flags into one frozen target.

    The environment is read here and nowhere else.
    """

    env = os.environ if environ is None else environ

    ports = Ports(
        rtsp=_port(env, "MEDIAMTX_RTSP_PORT", Ports.rtsp),
        rtmp=_port(env, "MEDIAMTX_RTMP_PORT", Ports.rtmp),
        hls=_port(env, "MEDIAMTX_HLS_PORT", Ports.hls),
        webrtc=_port(env, "MEDIAMTX_WEBRTC_PORT", Ports.webrtc),
        metrics=_port(env, "MEDIAMTX_METRICS_PORT", Ports.metrics),
    )
    if len(set(ports.as_dict().values())) != len(ports.as_dict()):
        raise ConfigError(f"Port assignments must be distinct: {ports.as_dict()}")

    kwargs: dict[str, Any] = {"ports": ports}

    version = getattr(args, "version", None) or env.get("MEDIAMTX_VERSION") or DEFAULT_VERSION
    kwargs["version"] = version

    config_file = env.get("MEDIAMTX_CONFIG_FILE")
    if config_file:
        cp = Path(config_file)
        if not cp.is_absolute():
            raise ConfigError(f"MEDIAMTX_CONFIG_FILE must be an absolute path, got {config_file!r}")
        kwargs["config_dir"] = cp.parent
        kwargs["config_name"] = cp.name

    if env.get("MEDIAMTX_RELEASE_URL"):
        kwargs["release_url"] = env["MEDIAMTX_RELEASE_URL"]
        # A mirror is not GitHub; the release API check does not apply.
        kwargs["release_api_url"] = ""

    state = getattr(args, "state", None) or env.get("MEDIAMTX_STATE_FILE")
    if state:
        kwargs["state_path"] = Path(state)

    log = getattr(args, "log", None) or env.get("MEDIAMTX_INSTALL_LOG")
    kwargs["log_path"] = Path(log) if log else default_log_path()

    arch = getattr(args, "arch", None)
    if arch:
        kwargs["arch"] = arch

    for flag in ("dry_run", "force", "debug", "require_checksum"):
        kwargs[flag] = bool(getattr(args, flag, False))

    return InstallationTarget(**kwargs)
