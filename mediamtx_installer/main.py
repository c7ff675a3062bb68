from __future__ import annotations

import argparse
import contextlib
import dataclasses
import logging
import os
import signal
import sys
import tempfile
import threading
from pathlib import Path
from typing import Iterator, List, Mapping, Optional

from .errors import InstallCancelled, InstallerError, InsufficientPermissions
from .host import HostServices, default_host
from .lib.command import CommandError
from .lib.hwdetect import SUPPORTED_ARCHES, resolve_arch
from .logging_utils import configure_logging
from .pipeline import run_transaction
from .report import failure_lines, render_summary
from .rollback import RollbackExecutor
from .state_store import install_lock, load_state, record_run, run_entry, save_state
from .steps import (
    CheckConnectivityStep,
    DetectExistingStep,
    EnableServiceStep,
    EnsureDependenciesStep,
    ExtractArtifactStep,
    FetchArtifactStep,
    InstallBinaryStep,
    PrepareDirectoriesStep,
    ProbeEnvironmentStep,
    ServiceAccountStep,
    ServiceUnitStep,
    VerifyArtifactStep,
    WriteConfigStep,
)
from .target import DEFAULT_VERSION, InstallationTarget, build_target
from .transaction import TransactionEngine, TransactionHandle, TransactionState

logger = logging.getLogger(__name__)


def build_steps():
    return [
        ProbeEnvironmentStep(),
        CheckConnectivityStep(),
        EnsureDependenciesStep(),
        DetectExistingStep(),
        FetchArtifactStep(),
        VerifyArtifactStep(),
        ExtractArtifactStep(),
        InstallBinaryStep(),
        WriteConfigStep(),
        ServiceAccountStep(),
        PrepareDirectoriesStep(),
        ServiceUnitStep(),
        EnableServiceStep(),
    ]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mediamtx-installer",
        description="Install MediaMTX as a systemd service, rolling back on any failure.",
    )
    p.add_argument("--version", default=None, help=f"MediaMTX version to install (default: {DEFAULT_VERSION})")
    p.add_argument("--arch", default=None, help=f"Force architecture ({', '.join(SUPPORTED_ARCHES)})")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--dry-run", action="store_true", help="Show what would be done without changing the host")
    p.add_argument("--force", action="store_true", help="Upgrade an existing installation without asking")
    p.add_argument(
        "--require-checksum",
        action="store_true",
        help="Fail instead of installing when the checksum manifest is unavailable",
    )
    p.add_argument(
        "--start",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Start the service after installing (asked interactively when omitted)",
    )
    p.add_argument("--log", default=None, help="Path to installer log")
    p.add_argument("--state", default=None, help="Path to installer state (json|yaml)")
    return p


@contextlib.contextmanager
def _cancel_on_signals(cancel: threading.Event) -> Iterator[None]:
    """SIGINT/SIGTERM only request a stop; the engine acts on it at the next step."""

    def handler(signum, frame):
        logger.warning("Received %s, stopping after the current step", signal.Signals(signum).name)
        cancel.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, handler)
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def _maybe_start(handle: TransactionHandle, host: HostServices, start: Optional[bool]) -> None:
    target = handle.target
    sm = host.service_manager
    if target.dry_run or sm is None:
        return
    if start is None:
        start = host.confirm("Would you like to start MediaMTX now?", False)
    if not start:
        logger.info("Service not started; run: systemctl start %s", target.unit_name)
        return
    try:
        sm.start(target.unit_name)
    except CommandError as e:
        # The installation is committed; a failed start does not undo it.
        handle.record.warn(f"Failed to start {target.unit_name}: {e}")
        return
    logger.info("MediaMTX service started")


def _save_run(handle: TransactionHandle, exit_code: int, log_path: str) -> None:
    path = str(handle.target.state_path)
    try:
        state = load_state(path)
        record_run(state, run_entry(handle, exit_code=exit_code, log_path=log_path), handle)
        save_state(path, state)
    except (OSError, ValueError) as e:
        logger.warning("Could not record installation state in %s: %s", path, e)


def run(
    target: InstallationTarget,
    *,
    host: HostServices,
    log_path: str,
    start: Optional[bool] = None,
    cancel: Optional[threading.Event] = None,
) -> int:
    """Run one transaction for a fully resolved target and return the exit code."""

    cancel = cancel or threading.Event()
    engine = TransactionEngine(
        RollbackExecutor(services=host.service_manager, accounts=host.accounts),
        dry_run=target.dry_run,
        cancel=cancel,
    )

    with tempfile.TemporaryDirectory(prefix="mediamtx-install-") as tmp:
        handle = engine.begin(target, services=host, work_dir=Path(tmp))
        try:
            run_transaction(engine=engine, handle=handle, steps=build_steps())
        except InstallCancelled as e:
            logger.info("%s", e)
            exit_code = e.exit_code
        except InstallerError as e:
            logger.error("%s: %s", type(e).__name__, e)
            for line in failure_lines(handle, log_path=log_path):
                logger.error("%s", line)
            exit_code = e.exit_code
        else:
            exit_code = 0

    if handle.state is TransactionState.COMPLETE:
        _maybe_start(handle, host, start)
        print(render_summary(handle, log_path=log_path, color=sys.stdout.isatty()))

    if not target.dry_run:
        _save_run(handle, exit_code, log_path)
    return exit_code


def main(
    argv: Optional[List[str]] = None,
    *,
    host: Optional[HostServices] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> int:
    args = build_parser().parse_args(argv)

    try:
        target = build_target(args, environ)
    except InstallerError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return e.exit_code

    log_path = configure_logging(
        str(target.log_path),
        level=logging.DEBUG if target.debug else logging.INFO,
    )
    logger.info("Starting MediaMTX installation (version %s)", target.version)
    if target.dry_run:
        logger.info("Running in DRY RUN mode - no changes will be made")

    try:
        if not target.dry_run and os.geteuid() != 0:
            raise InsufficientPermissions("This installer must be run as root (try sudo, or use --dry-run)")

        host = host or default_host()
        arch = resolve_arch(target.arch, machine=host.machine(), which=host.which)
        target = dataclasses.replace(target, arch=arch)

        cancel = threading.Event()
        with _cancel_on_signals(cancel):
            if target.dry_run:
                return run(target, host=host, log_path=log_path, start=args.start, cancel=cancel)
            with install_lock(str(target.state_path)):
                return run(target, host=host, log_path=log_path, start=args.start, cancel=cancel)
    except InstallerError as e:
        logger.error("%s: %s", type(e).__name__, e)
        logger.error("See the installer log for details: %s", log_path)
        return e.exit_code


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
