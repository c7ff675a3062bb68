from __future__ import annotations

import enum
import logging
import os
import shutil
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Protocol, Set

from .errors import InstallError, InstallInterrupted, RollbackActionError
from .rollback import (
    RemoveDirectory,
    RemovePath,
    RemoveServiceUnit,
    RestoreBackup,
    RollbackAction,
    RollbackExecutor,
    RollbackStack,
)
from .target import InstallationTarget

if TYPE_CHECKING:  # pragma: no cover
    from .host import HostServices
    from .lib.fetch import Artifact
    from .lib.verify import VerificationResult

logger = logging.getLogger(__name__)


class TransactionState(str, enum.Enum):
    INIT = "Init"
    PROBING = "Probing"
    FETCHING = "Fetching"
    VERIFYING = "Verifying"
    INSTALLING = "Installing"
    CONFIGURING = "Configuring"
    REGISTERING_SERVICE = "RegisteringService"
    COMPLETE = "Complete"
    FAILED = "Failed"
    ROLLED_BACK = "RolledBack"


_FORWARD = [
    TransactionState.INIT,
    TransactionState.PROBING,
    TransactionState.FETCHING,
    TransactionState.VERIFYING,
    TransactionState.INSTALLING,
    TransactionState.CONFIGURING,
    TransactionState.REGISTERING_SERVICE,
    TransactionState.COMPLETE,
]


@dataclass(frozen=True)
class BackupRecord:
    original: Path
    backup: Path
    timestamp: str


@dataclass(frozen=True)
class StepResult:
    step_id: str
    pushed: int = 0
    simulated: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RollbackFailure:
    action: RollbackAction
    error: str


@dataclass
class InstallRecord:
    """Facts discovered while the transaction runs, for later steps and the report."""

    arch: Optional[str] = None
    package_manager: Optional[str] = None
    service_manager: Optional[str] = None
    existing_install: bool = False
    existing_version: Optional[str] = None
    artifact: Optional["Artifact"] = None
    manifest: Optional[str] = None
    verification: Optional["VerificationResult"] = None
    binary: Optional[Path] = None
    installed_version: Optional[str] = None
    service_user: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    planned: List[str] = field(default_factory=list)
    changes: List[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


class TransactionHandle:
    """One run's mutable transaction state."""

    def __init__(
        self,
        target: InstallationTarget,
        *,
        services: Optional["HostServices"] = None,
        work_dir: Optional[Path] = None,
    ) -> None:
        self.target = target
        self.services = services
        self.work_dir = work_dir
        self.state = TransactionState.INIT
        self.history: List[TransactionState] = [TransactionState.INIT]
        self.stack = RollbackStack()
        self.record = InstallRecord(arch=target.arch)
        self.backups: List[BackupRecord] = []
        self.created: Set[Path] = set()
        self.failures: List[RollbackFailure] = []
        self.error: Optional[BaseException] = None

    def transition(self, new: TransactionState) -> None:
        if new is self.state:
            return
        old = self.state
        if new is TransactionState.FAILED:
            if old in (TransactionState.COMPLETE, TransactionState.ROLLED_BACK):
                raise RuntimeError(f"cannot fail a finished transaction ({old.value})")
        elif new is TransactionState.ROLLED_BACK:
            if old is not TransactionState.FAILED:
                raise RuntimeError(f"cannot roll back from {old.value}")
        elif old in (TransactionState.FAILED, TransactionState.ROLLED_BACK):
            raise RuntimeError(f"cannot leave {old.value} for {new.value}")
        elif _FORWARD.index(new) < _FORWARD.index(old):
            raise RuntimeError(f"backward transition {old.value} -> {new.value}")
        logger.info("State transition: %s -> %s", old.value, new.value)
        self.state = new
        self.history.append(new)


class StepContext:
    """What a step sees: the target, host collaborators, and the rollback stack."""

    def __init__(
        self,
        handle: TransactionHandle,
        *,
        dry_run: bool,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self._handle = handle
        self.dry_run = dry_run
        self._cancel = cancel

    @property
    def target(self) -> InstallationTarget:
        return self._handle.target

    @property
    def services(self) -> "HostServices":
        if self._handle.services is None:
            raise RuntimeError("transaction was started without host services")
        return self._handle.services

    @property
    def facts(self) -> InstallRecord:
        return self._handle.record

    @property
    def work_dir(self) -> Path:
        if self._handle.work_dir is None:
            raise RuntimeError("transaction was started without a work directory")
        return self._handle.work_dir

    def record(self, action: RollbackAction) -> None:
        if self.dry_run:
            logger.debug("[DRY RUN] not recording %s", action.describe())
            return
        self._handle.stack.push(action)
        self._handle.record.changes.append(action.describe())

    def created_this_run(self, path: Path) -> bool:
        return path in self._handle.created

    def ensure_dir(self, path: Path, *, mode: int = 0o755) -> None:
        """Create path and any missing parents, one rollback entry per level."""

        missing: List[Path] = []
        p = path
        while not p.exists():
            missing.append(p)
            if p.parent == p:
                break
            p = p.parent
        for d in reversed(missing):
            d.mkdir(mode=mode)
            self._handle.created.add(d)
            self.record(RemoveDirectory(d))
            logger.info("Created directory %s", d)

    def backup(self, path: Path, *, reload_units: bool = False) -> Optional[BackupRecord]:
        """Durably copy path into the backup dir before it is overwritten."""

        if not path.exists():
            return None
        target = self._handle.target
        self.ensure_dir(target.backup_dir)

        stamp = time.strftime("%Y%m%d_%H%M%S")
        dest = target.backup_dir / f"{path.name}.{stamp}.bak"
        n = 1
        while dest.exists():
            dest = target.backup_dir / f"{path.name}.{stamp}.{n}.bak"
            n += 1

        shutil.copy2(path, dest)
        with dest.open("rb") as f:
            os.fsync(f.fileno())
        _fsync_dir(dest.parent)

        st = path.stat()
        self.record(
            RestoreBackup(
                backup=dest,
                original=path,
                owner=(st.st_uid, st.st_gid),
                reload_units=reload_units,
            )
        )
        rec = BackupRecord(original=path, backup=dest, timestamp=stamp)
        self._handle.backups.append(rec)
        logger.info("Backed up %s to %s", path, dest)
        return rec

    def write_file(self, path: Path, content: str, *, mode: int = 0o644, unit: Optional[str] = None) -> None:
        """Replace path atomically, backing up whatever was there.

        With `unit` set the file is a systemd unit: undoing the write also
        reloads the service manager.
        """

        existed = path.exists()
        if existed:
            self.backup(path, reload_units=unit is not None)
        else:
            self.ensure_dir(path.parent)

        staging = path.with_name(f".{path.name}.tmp")
        try:
            with staging.open("w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            staging.chmod(mode)
            os.replace(staging, path)
        except OSError as e:
            if staging.exists():
                staging.unlink()
            raise InstallError(f"Failed to write {path}: {e}") from e

        if not existed:
            self._handle.created.add(path)
            if unit is not None:
                self.record(RemoveServiceUnit(path=path, unit=unit))
            else:
                self.record(RemovePath(path))

    def check_cancelled(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise InstallInterrupted("Installation interrupted")


def _fsync_dir(path: Path) -> None:
    fd = os.open(str(path), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class Step(Protocol):
    step_id: str
    phase: TransactionState
    mutates_host: bool

    def run(self, ctx: StepContext) -> Optional[List[RollbackAction]]:
        ...

    def simulate(self, ctx: StepContext) -> List[str]:
        ...


class TransactionEngine:
    """Runs steps against a rollback stack and unwinds it on failure."""

    def __init__(
        self,
        executor: RollbackExecutor,
        *,
        dry_run: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.executor = executor
        self.dry_run = dry_run
        self.cancel = cancel or threading.Event()

    def begin(
        self,
        target: InstallationTarget,
        *,
        services: Optional["HostServices"] = None,
        work_dir: Optional[Path] = None,
    ) -> TransactionHandle:
        handle = TransactionHandle(target, services=services, work_dir=work_dir)
        logger.info("Transaction started (version=%s, dry_run=%s)", target.version, self.dry_run)
        return handle

    def _check_cancel(self) -> None:
        if self.cancel.is_set():
            raise InstallInterrupted("Installation interrupted by signal")

    def context(self, handle: TransactionHandle) -> StepContext:
        return StepContext(handle, dry_run=self.dry_run, cancel=self.cancel)

    def run_step(self, handle: TransactionHandle, step: Step) -> StepResult:
        """Run one step; if it fails, the transaction is aborted before the error propagates."""

        try:
            return self._run_step(handle, step)
        except BaseException as e:
            handle.error = e
            self.abort(handle)
            raise

    def _run_step(self, handle: TransactionHandle, step: Step) -> StepResult:
        self._check_cancel()
        handle.transition(step.phase)
        ctx = self.context(handle)

        if self.dry_run and step.mutates_host:
            planned = list(step.simulate(ctx))
            for line in planned:
                logger.info("[DRY RUN] %s", line)
            handle.record.planned.extend(planned)
            return StepResult(step_id=step.step_id, simulated=planned)

        logger.debug("Running step %s", step.step_id)
        before = len(handle.stack)
        returned = step.run(ctx) or []
        for action in returned:
            ctx.record(action)
        return StepResult(step_id=step.step_id, pushed=len(handle.stack) - before)

    def commit(self, handle: TransactionHandle) -> None:
        try:
            self._check_cancel()
        except InstallInterrupted as e:
            handle.error = e
            self.abort(handle)
            raise
        handle.transition(TransactionState.COMPLETE)
        discarded = len(handle.stack)
        handle.stack.clear()
        logger.info("Transaction committed (%d rollback point(s) discarded)", discarded)

    def abort(self, handle: TransactionHandle) -> List[RollbackFailure]:
        """Unwind every recorded action, newest first. Never raises for one bad action."""

        handle.transition(TransactionState.FAILED)
        if len(handle.stack):
            logger.warning("Rolling back %d change(s)...", len(handle.stack))
        failures: List[RollbackFailure] = []
        while len(handle.stack):
            action = handle.stack.pop()
            logger.info("Rollback: %s", action.describe())
            try:
                self.executor.execute(action)
            except RollbackActionError as e:
                logger.error("Rollback action failed: %s", e)
                failures.append(RollbackFailure(action=action, error=str(e)))
        handle.failures = failures
        handle.transition(TransactionState.ROLLED_BACK)
        if failures:
            logger.error("Rollback finished with %d failure(s); manual cleanup may be needed", len(failures))
        else:
            logger.info("Rollback completed")
        return failures
