from __future__ import annotations

import logging
import platform
import shutil
import sys
from dataclasses import dataclass, field
from typing import Callable, Optional

from .lib.accounts import AccountManager, SystemAccounts
from .lib.fetch import ArtifactFetcher, check_release_exists
from .lib.net import ConnectivityChecker
from .lib.pkg import PackageManager, detect_package_manager
from .lib.systemd import ServiceManager, detect_service_manager

logger = logging.getLogger(__name__)

Which = Callable[[str], Optional[str]]
Confirm = Callable[[str, bool], bool]


def tty_confirm(question: str, default: bool = False) -> bool:
    """Ask a yes/no question; without a terminal the default is taken."""

    if not sys.stdin.isatty():
        logger.info("%s (non-interactive, answering %s)", question, "yes" if default else "no")
        return default
    suffix = " [Y/n] " if default else " [y/N] "
    try:
        answer = input(question + suffix).strip().lower()
    except EOFError:
        return default
    if not answer:
        return default
    return answer in {"y", "yes"}


@dataclass
class HostServices:
    """Everything that touches the host outside the filesystem."""

    which: Which = shutil.which
    machine: Callable[[], str] = platform.machine
    package_manager: Optional[PackageManager] = None
    service_manager: Optional[ServiceManager] = None
    accounts: AccountManager = field(default_factory=SystemAccounts)
    connectivity: ConnectivityChecker = field(default_factory=ConnectivityChecker)
    fetcher: ArtifactFetcher = field(default_factory=ArtifactFetcher)
    release_check: Callable[[str, str], None] = check_release_exists
    confirm: Confirm = tty_confirm


def default_host() -> HostServices:
    return HostServices(
        package_manager=detect_package_manager(shutil.which),
        service_manager=detect_service_manager(which=shutil.which),
    )
