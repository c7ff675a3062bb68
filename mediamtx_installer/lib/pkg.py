from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from ..errors import DependencyError
from .command import CommandError, run_cmd

logger = logging.getLogger(__name__)

Which = Callable[[str], Optional[str]]

REQUIRED_COMMANDS = ("systemctl", "useradd", "userdel")
OPTIONAL_COMMANDS = ("curl", "wget")


class PackageManager(Protocol):
    name: str

    def update(self) -> None:
        ...

    def install(self, packages: Sequence[str]) -> None:
        ...

    def package_for(self, command: str) -> str:
        ...


@dataclass
class _CommandLinePackageManager:
    """A package manager driven through its command line."""

    name: str
    update_argv: Tuple[str, ...]
    install_argv: Tuple[str, ...]
    # dnf/yum check-update exits 100 when updates exist.
    update_ok_codes: Tuple[int, ...] = (0,)
    packages: Dict[str, str] = field(default_factory=dict)

    def update(self) -> None:
        r = run_cmd(list(self.update_argv), check=False, timeout=600)
        if r.returncode not in self.update_ok_codes:
            raise CommandError(self.update_argv, r.returncode, r.stderr)

    def install(self, packages: Sequence[str]) -> None:
        if not packages:
            return
        run_cmd([*self.install_argv, *packages], timeout=1800)

    def package_for(self, command: str) -> str:
        return self.packages.get(command, command)


def apt_manager() -> _CommandLinePackageManager:
    return _CommandLinePackageManager(
        name="apt",
        update_argv=("apt-get", "update"),
        install_argv=("apt-get", "install", "-y", "--no-install-recommends"),
        packages={"systemctl": "systemd", "useradd": "passwd", "userdel": "passwd"},
    )


def dnf_manager() -> _CommandLinePackageManager:
    return _CommandLinePackageManager(
        name="dnf",
        update_argv=("dnf", "check-update"),
        install_argv=("dnf", "install", "-y"),
        update_ok_codes=(0, 100),
        packages={"systemctl": "systemd", "useradd": "shadow-utils", "userdel": "shadow-utils"},
    )


def yum_manager() -> _CommandLinePackageManager:
    return _CommandLinePackageManager(
        name="yum",
        update_argv=("yum", "check-update"),
        install_argv=("yum", "install", "-y"),
        update_ok_codes=(0, 100),
        packages={"systemctl": "systemd", "useradd": "shadow-utils", "userdel": "shadow-utils"},
    )


def pacman_manager() -> _CommandLinePackageManager:
    return _CommandLinePackageManager(
        name="pacman",
        update_argv=("pacman", "-Sy"),
        install_argv=("pacman", "-S", "--noconfirm"),
        packages={"systemctl": "systemd", "useradd": "shadow", "userdel": "shadow"},
    )


def zypper_manager() -> _CommandLinePackageManager:
    return _CommandLinePackageManager(
        name="zypper",
        update_argv=("zypper", "refresh"),
        install_argv=("zypper", "install", "-y"),
        packages={"systemctl": "systemd", "useradd": "shadow", "userdel": "shadow"},
    )


# Detection order matters: dnf hosts often ship a yum shim.
_MANAGERS: List[Tuple[str, Callable[[], _CommandLinePackageManager]]] = [
    ("apt-get", apt_manager),
    ("dnf", dnf_manager),
    ("yum", yum_manager),
    ("pacman", pacman_manager),
    ("zypper", zypper_manager),
]


def detect_package_manager(which: Which = shutil.which) -> Optional[PackageManager]:
    for executable, factory in _MANAGERS:
        if which(executable):
            pm = factory()
            logger.info("Detected package manager: %s", pm.name)
            return pm
    logger.warning("Could not detect a supported package manager")
    return None


@dataclass(frozen=True)
class DependencyReport:
    installed: List[str]
    missing_optional: List[str]


def _missing(commands: Sequence[str], which: Which) -> List[str]:
    return [c for c in commands if not which(c)]


def _install_for(manager: PackageManager, commands: Sequence[str]) -> None:
    packages = sorted({manager.package_for(c) for c in commands})
    try:
        manager.update()
    except CommandError as e:
        logger.warning("Package index update failed, continuing: %s", e)
    try:
        manager.install(packages)
    except CommandError:
        # One bad package name should not block the rest.
        logger.warning("Bulk install failed; trying packages individually")
        for pkg in packages:
            try:
                manager.install([pkg])
            except CommandError as e:
                logger.warning("Failed to install %s: %s", pkg, e)


def ensure_commands(
    *,
    required: Sequence[str] = REQUIRED_COMMANDS,
    optional: Sequence[str] = OPTIONAL_COMMANDS,
    manager: Optional[PackageManager],
    which: Which = shutil.which,
) -> DependencyReport:
    """Make sure required executables exist, installing them when possible.

    Missing optional tools are only ever a warning.
    """

    missing_required = _missing(required, which)
    missing_optional = _missing(optional, which)
    wanted = missing_required + missing_optional

    if wanted and manager is not None:
        logger.info("Installing missing tools via %s: %s", manager.name, ", ".join(wanted))
        _install_for(manager, wanted)
    elif missing_required:
        raise DependencyError(
            f"Missing required dependencies: {', '.join(missing_required)} "
            "(no supported package manager to install them)"
        )

    still_required = _missing(required, which)
    if still_required:
        raise DependencyError(f"Missing required dependencies: {', '.join(still_required)}")

    still_optional = _missing(optional, which)
    if still_optional:
        logger.warning("Missing optional dependencies: %s", ", ".join(still_optional))
        logger.warning("Some features may be limited without these tools")

    installed = [c for c in wanted if c not in still_optional]
    logger.info("All required dependencies are installed")
    return DependencyReport(installed=installed, missing_optional=still_optional)
