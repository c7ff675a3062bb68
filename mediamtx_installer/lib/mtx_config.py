"""MediaMTX configuration rendering.

The template is fixed. Only the listener addresses and the log file vary with
the installation target, and `parameters()` defines exactly which keys those
are so a written file can be checked by parsing it back.
"""

from __future__ import annotations

import copy
import time
from pathlib import Path
from typing import Any, Dict

import yaml

from ..errors import ConfigError
from ..target import InstallationTarget

_TEMPLATE: Dict[str, Any] = {
    "logLevel": "info",
    "logDestinations": ["stdout", "file"],
    "logFile": None,
    "readTimeout": "10s",
    "writeTimeout": "10s",
    "readBufferCount": 512,
    "externalAuthenticationURL": "",
    "api": False,
    "apiAddress": "127.0.0.1:9997",
    "metrics": True,
    "metricsAddress": None,
    "rtspDisable": False,
    "protocols": ["udp", "multicast", "tcp"],
    "encryption": "no",
    "rtspAddress": None,
    "rtspsAddress": ":8322",
    "rtpAddress": ":8000",
    "rtcpAddress": ":8001",
    "multicastIPRange": "224.1.0.0/16",
    "multicastRTPPort": 8002,
    "multicastRTCPPort": 8003,
    "serverKey": "server.key",
    "serverCert": "server.crt",
    "authMethods": ["basic", "digest"],
    "rtmpDisable": False,
    "rtmpAddress": None,
    "rtmpEncryption": "no",
    "rtmpsAddress": ":1936",
    "rtmpServerKey": "server.key",
    "rtmpServerCert": "server.crt",
    "hlsDisable": False,
    "hlsAddress": None,
    "hlsEncryption": False,
    "hlsServerKey": "server.key",
    "hlsServerCert": "server.crt",
    "hlsAlwaysRemux": False,
    "hlsVariant": "lowLatency",
    "hlsSegmentCount": 7,
    "hlsSegmentDuration": "1s",
    "hlsPartDuration": "200ms",
    "hlsSegmentMaxSize": "50M",
    "hlsAllowOrigin": "*",
    "hlsTrustedProxies": [],
    "hlsDirectory": "",
    "webrtcDisable": False,
    "webrtcAddress": None,
    "webrtcEncryption": False,
    "webrtcServerKey": "server.key",
    "webrtcServerCert": "server.crt",
    "webrtcAllowOrigin": "*",
    "webrtcTrustedProxies": [],
    "webrtcICEServers": ["stun:stun.l.google.com:19302"],
    "webrtcICEHostNAT1To1IPs": [],
    "paths": {
        "all": {
            "source": "publisher",
            "sourceProtocol": "automatic",
            "sourceAnyPortEnable": False,
            "sourceOnDemand": False,
            "sourceOnDemandStartTimeout": "10s",
            "sourceOnDemandCloseAfter": "10s",
            "disablePublisherOverride": False,
            "publishIPs": [],
            "readIPs": [],
            "runOnInitRestart": False,
            "runOnDemandRestart": False,
            "runOnDemandStartTimeout": "10s",
            "runOnDemandCloseAfter": "10s",
            "runOnReadyRestart": False,
            "runOnReadRestart": False,
        }
    },
}


def parameters(target: InstallationTarget) -> Dict[str, str]:
    ports = target.ports
    return {
        "logFile": str(target.log_dir / "mediamtx.log"),
        "rtspAddress": f":{ports.rtsp}",
        "rtmpAddress": f":{ports.rtmp}",
        "hlsAddress": f":{ports.hls}",
        "webrtcAddress": f":{ports.webrtc}",
        "metricsAddress": f"127.0.0.1:{ports.metrics}",
    }


def render(target: InstallationTarget, *, generator: str = "mediamtx-installer") -> str:
    doc = copy.deepcopy(_TEMPLATE)
    doc.update(parameters(target))
    header = (
        "# MediaMTX Configuration\n"
        f"# Generated by {generator} on {time.strftime('%Y-%m-%d %H:%M:%S')}\n"
        "# Documentation: https://github.com/bluenviron/mediamtx\n\n"
    )
    return header + yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)


def load(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"{path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return data


def check_roundtrip(path: Path, target: InstallationTarget) -> None:
    """Re-parse a written config and insist every parameter survived."""

    data = load(path)
    for key, expected in parameters(target).items():
        if data.get(key) != expected:
            raise ConfigError(f"{path}: {key} is {data.get(key)!r}, expected {expected!r}")
