"""Compensating actions and the stack that holds them.

Actions are plain frozen dataclasses drawn from a closed set. Nothing here
evaluates strings: each action type has exactly one executor function, so
the stack can be logged, inspected and tested without running anything.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Type, Union

from .errors import RollbackActionError
from .lib.accounts import AccountManager
from .lib.systemd import ServiceManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemovePath:
    path: Path

    def describe(self) -> str:
        return f"remove {self.path}"


@dataclass(frozen=True)
class RemoveDirectory:
    path: Path

    def describe(self) -> str:
        return f"remove directory {self.path}"


@dataclass(frozen=True)
class RestoreBackup:
    backup: Path
    original: Path
    owner: Optional[Tuple[int, int]] = None
    reload_units: bool = False

    def describe(self) -> str:
        return f"restore {self.original} from {self.backup}"


@dataclass(frozen=True)
class RestoreOwnership:
    path: Path
    uid: int
    gid: int

    def describe(self) -> str:
        return f"restore ownership of {self.path} to {self.uid}:{self.gid}"


@dataclass(frozen=True)
class DeleteServiceAccount:
    name: str

    def describe(self) -> str:
        return f"delete service account {self.name}"


@dataclass(frozen=True)
class RemoveServiceUnit:
    path: Path
    unit: str

    def describe(self) -> str:
        return f"remove service unit {self.path}"


@dataclass(frozen=True)
class DisableService:
    unit: str

    def describe(self) -> str:
        return f"disable service {self.unit}"


RollbackAction = Union[
    RemovePath,
    RemoveDirectory,
    RestoreBackup,
    RestoreOwnership,
    DeleteServiceAccount,
    RemoveServiceUnit,
    DisableService,
]


class RollbackStack:
    """LIFO of compensating actions, oldest first when iterated."""

    def __init__(self) -> None:
        self._items: List[RollbackAction] = []

    def push(self, action: RollbackAction) -> None:
        if not isinstance(action, _ACTION_TYPES):
            raise TypeError(f"not a rollback action: {action!r}")
        self._items.append(action)
        logger.debug("Added rollback point: %s", action.describe())

    def pop(self) -> RollbackAction:
        if not self._items:
            raise IndexError("pop from empty rollback stack")
        return self._items.pop()

    def peek(self) -> Optional[RollbackAction]:
        return self._items[-1] if self._items else None

    def snapshot(self) -> List[RollbackAction]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[RollbackAction]:
        return iter(list(self._items))


class RollbackExecutor:
    """Runs one compensating action against the host."""

    def __init__(self, *, services: Optional[ServiceManager], accounts: Optional[AccountManager]) -> None:
        self.services = services
        self.accounts = accounts
        self._dispatch: Dict[Type, Callable] = {
            RemovePath: self._remove_path,
            RemoveDirectory: self._remove_directory,
            RestoreBackup: self._restore_backup,
            RestoreOwnership: self._restore_ownership,
            DeleteServiceAccount: self._delete_account,
            RemoveServiceUnit: self._remove_unit,
            DisableService: self._disable_service,
        }

    def execute(self, action: RollbackAction) -> None:
        fn = self._dispatch.get(type(action))
        if fn is None:
            raise RollbackActionError(f"no executor for {action!r}")
        try:
            fn(action)
        except RollbackActionError:
            raise
        except Exception as e:
            raise RollbackActionError(f"{action.describe()} failed: {e}") from e

    def _remove_path(self, action: RemovePath) -> None:
        if action.path.exists() or action.path.is_symlink():
            action.path.unlink()

    def _remove_directory(self, action: RemoveDirectory) -> None:
        if action.path.is_dir():
            # rmdir, never rmtree: anything left inside was not ours to delete
            action.path.rmdir()

    def _restore_backup(self, action: RestoreBackup) -> None:
        shutil.copy2(action.backup, action.original)
        if action.owner is not None and os.geteuid() == 0:
            os.chown(action.original, *action.owner)
        action.backup.unlink()
        if action.reload_units:
            self._require_services().daemon_reload()

    def _restore_ownership(self, action: RestoreOwnership) -> None:
        if self.accounts is None:
            raise RollbackActionError("no account manager available")
        self.accounts.chown(action.path, uid=action.uid, gid=action.gid)

    def _delete_account(self, action: DeleteServiceAccount) -> None:
        if self.accounts is None:
            raise RollbackActionError("no account manager available")
        self.accounts.delete(action.name)

    def _remove_unit(self, action: RemoveServiceUnit) -> None:
        if action.path.exists():
            action.path.unlink()
        self._require_services().daemon_reload()

    def _disable_service(self, action: DisableService) -> None:
        self._require_services().disable(action.unit)

    def _require_services(self) -> ServiceManager:
        if self.services is None:
            raise RollbackActionError("no service manager available")
        return self.services


_ACTION_TYPES = (
    RemovePath,
    RemoveDirectory,
    RestoreBackup,
    RestoreOwnership,
    DeleteServiceAccount,
    RemoveServiceUnit,
    DisableService,
)
