from __future__ import annotations

import logging
import os
import pwd
from pathlib import Path
from typing import Protocol, Tuple

from .command import run_cmd

logger = logging.getLogger(__name__)


class AccountManager(Protocol):
    def exists(self, name: str) -> bool:
        ...

    def create_system_account(self, name: str) -> None:
        ...

    def delete(self, name: str) -> None:
        ...

    def ownership(self, path: Path) -> Tuple[int, int]:
        ...

    def chown(self, path: Path, *, user: str | None = None, uid: int | None = None, gid: int | None = None) -> None:
        ...


class SystemAccounts:
    """Local accounts through the shadow-utils command line."""

    def exists(self, name: str) -> bool:
        return run_cmd(["id", name], check=False, timeout=10).returncode == 0

    def create_system_account(self, name: str) -> None:
        run_cmd(
            ["useradd", "--system", "--no-create-home", "--shell", "/usr/sbin/nologin", name],
            timeout=30,
        )
        logger.info("Created service account %s", name)

    def delete(self, name: str) -> None:
        run_cmd(["userdel", name], timeout=30)
        logger.info("Deleted service account %s", name)

    def ownership(self, path: Path) -> Tuple[int, int]:
        st = path.stat()
        return st.st_uid, st.st_gid

    def chown(self, path: Path, *, user: str | None = None, uid: int | None = None, gid: int | None = None) -> None:
        if user is not None:
            pw = pwd.getpwnam(user)
            uid, gid = pw.pw_uid, pw.pw_gid
        if uid is None or gid is None:
            raise ValueError("chown needs either user or uid/gid")
        os.chown(path, uid, gid)
