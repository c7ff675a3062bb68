from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable, Optional, Protocol

from ..target import InstallationTarget
from .command import run_cmd

logger = logging.getLogger(__name__)


class ServiceManager(Protocol):
    name: str

    def daemon_reload(self) -> None:
        ...

    def enable(self, unit: str) -> None:
        ...

    def disable(self, unit: str) -> None:
        ...

    def start(self, unit: str) -> None:
        ...

    def is_enabled(self, unit: str) -> bool:
        ...


class SystemdServiceManager:
    name = "systemd"

    def daemon_reload(self) -> None:
        run_cmd(["systemctl", "daemon-reload"], timeout=60)

    def enable(self, unit: str) -> None:
        run_cmd(["systemctl", "enable", unit], timeout=60)

    def disable(self, unit: str) -> None:
        run_cmd(["systemctl", "disable", unit], timeout=60)

    def start(self, unit: str) -> None:
        run_cmd(["systemctl", "start", unit], timeout=120)

    def is_enabled(self, unit: str) -> bool:
        return run_cmd(["systemctl", "is-enabled", "--quiet", unit], check=False, timeout=30).returncode == 0


def detect_service_manager(
    *,
    which: Callable[[str], Optional[str]] = shutil.which,
    run_dir: Path = Path("/run/systemd/system"),
) -> Optional[ServiceManager]:
    """systemd is the only supported init system; None means unsupported."""

    if which("systemctl") and run_dir.is_dir():
        logger.info("Detected service manager: systemd")
        return SystemdServiceManager()
    logger.warning("systemd is not running on this host")
    return None


def render_unit(target: InstallationTarget, *, user: str) -> str:
    """Hardened unit: only CAP_NET_BIND_SERVICE, read-only config, writable logs."""

    return f"""[Unit]
Description=MediaMTX RTSP/RTMP/HLS/WebRTC Media Server
Documentation=https://github.com/bluenviron/mediamtx
After=network-online.target
Wants=network-online.target
StartLimitIntervalSec=300
StartLimitBurst=5

[Service]
Type=simple
User={user}
Group={user}
ExecStart={target.binary_path} {target.config_path}
WorkingDirectory={target.install_dir}
Restart=on-failure
RestartSec=10

# Logging
StandardOutput=journal
StandardError=journal
SyslogIdentifier=mediamtx

# Security hardening
NoNewPrivileges=true
PrivateTmp=true
ProtectSystem=strict
ProtectHome=true
ProtectKernelTunables=true
ProtectKernelModules=true
ProtectControlGroups=true
RestrictAddressFamilies=AF_INET AF_INET6 AF_UNIX
RestrictNamespaces=true
LockPersonality=true
MemoryDenyWriteExecute=true
RestrictRealtime=true
RestrictSUIDSGID=true
RemoveIPC=true

# Binding to configured ports is the only privilege granted
CapabilityBoundingSet=CAP_NET_BIND_SERVICE
AmbientCapabilities=CAP_NET_BIND_SERVICE

# File system access
ReadWritePaths={target.log_dir}
ReadOnlyPaths={target.config_dir}

# Resource limits
LimitNOFILE=65535
LimitNPROC=512

[Install]
WantedBy=multi-user.target
"""
