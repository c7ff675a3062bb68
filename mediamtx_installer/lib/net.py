from __future__ import annotations

import logging
import os
import shutil
import socket
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlparse

import requests

from .command import CommandError, run_cmd

logger = logging.getLogger(__name__)

DEFAULT_PROBE_URL = "https://github.com"
PROBE_TIMEOUT = 10

Probe = Callable[[str], bool]


def _probe_http(url: str) -> bool:
    try:
        r = requests.head(url, timeout=PROBE_TIMEOUT, allow_redirects=True)
    except requests.RequestException as e:
        logger.debug("HTTP probe failed: %s", e)
        return False
    return r.status_code < 500


def _probe_curl(url: str) -> bool:
    try:
        r = run_cmd(
            ["curl", "-s", "--head", "--connect-timeout", str(PROBE_TIMEOUT), url],
            check=False,
            timeout=PROBE_TIMEOUT + 5,
        )
    except CommandError:
        return False
    return r.returncode == 0


def _probe_wget(url: str) -> bool:
    try:
        r = run_cmd(
            ["wget", "-q", "--spider", f"--timeout={PROBE_TIMEOUT}", url],
            check=False,
            timeout=PROBE_TIMEOUT + 5,
        )
    except CommandError:
        return False
    return r.returncode == 0


def _probe_tcp(url: str) -> bool:
    parsed = urlparse(url)
    host = parsed.hostname
    if not host:
        return False
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    try:
        with socket.create_connection((host, port), timeout=5):
            return True
    except OSError as e:
        logger.debug("TCP probe failed: %s", e)
        return False


def default_probes(which: Callable[[str], Optional[str]] = shutil.which) -> List[Tuple[str, Probe]]:
    probes: List[Tuple[str, Probe]] = [("http", _probe_http)]
    if which("curl"):
        probes.append(("curl", _probe_curl))
    if which("wget"):
        probes.append(("wget", _probe_wget))
    probes.append(("tcp", _probe_tcp))
    return probes


@dataclass
class ConnectivityChecker:
    """Best-effort reachability check; the first probe that succeeds wins."""

    url: str = DEFAULT_PROBE_URL
    probes: List[Tuple[str, Probe]] = field(default_factory=default_probes)

    def check(self) -> Optional[str]:
        """Return the name of the probe that confirmed connectivity, or None."""

        proxies = {k: os.environ[k] for k in ("HTTP_PROXY", "HTTPS_PROXY") if os.environ.get(k)}
        if proxies:
            logger.info("Proxy detected: %s", proxies)

        for name, probe in self.probes:
            if probe(self.url):
                logger.info("Network connectivity confirmed (%s)", name)
                return name
            logger.debug("Connectivity probe %s did not confirm %s", name, self.url)
        return None
