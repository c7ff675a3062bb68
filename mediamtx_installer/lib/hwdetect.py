from __future__ import annotations

import logging
import platform
import shutil
from typing import Callable, Optional

from ..errors import UnsupportedArchitecture
from .command import run_cmd

logger = logging.getLogger(__name__)

SUPPORTED_ARCHES = ("amd64", "arm64", "armv7", "armv6")

_DPKG_ARCH_MAP = {
    "amd64": "amd64",
    "arm64": "arm64",
    "armhf": "armv7",
    "armel": "armv6",
}


def normalize_arch(machine: str) -> Optional[str]:
    """Map a kernel machine name to a release architecture tag (None if unknown)."""

    m = machine.strip().lower()
    if m in {"x86_64", "amd64"}:
        return "amd64"
    if m in {"aarch64", "arm64"}:
        return "arm64"
    if m.startswith("armv7") or m == "armhf":
        return "armv7"
    if m.startswith("armv6") or m == "armel":
        return "armv6"
    return None


def _dpkg_arch(which: Callable[[str], Optional[str]]) -> Optional[str]:
    if not which("dpkg"):
        return None
    r = run_cmd(["dpkg", "--print-architecture"], check=False, timeout=10)
    if r.returncode != 0:
        return None
    return _DPKG_ARCH_MAP.get(r.stdout.strip())


def detect_arch(
    *,
    machine: Optional[str] = None,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> str:
    """Resolve the host architecture to exactly one supported tag.

    uname first, dpkg as the second opinion for odd kernel names.
    """

    raw = machine if machine is not None else platform.machine()
    arch = normalize_arch(raw)
    if arch is None:
        arch = _dpkg_arch(which)
        if arch is not None:
            logger.debug("Architecture %r resolved via dpkg to %s", raw, arch)

    if arch is None:
        raise UnsupportedArchitecture(
            f"Unsupported architecture: {raw or 'unknown'} (supported: {', '.join(SUPPORTED_ARCHES)})"
        )

    logger.info("Detected architecture: %s", arch)
    return arch


def resolve_arch(
    override: Optional[str],
    *,
    machine: Optional[str] = None,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> str:
    if override:
        arch = override if override in SUPPORTED_ARCHES else normalize_arch(override)
        if arch not in SUPPORTED_ARCHES:
            raise UnsupportedArchitecture(
                f"Unsupported architecture: {override} (supported: {', '.join(SUPPORTED_ARCHES)})"
            )
        logger.info("Using architecture override: %s", arch)
        return arch
    return detect_arch(machine=machine, which=which)
