from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .errors import InstallLocked
from .transaction import TransactionHandle, TransactionState

logger = logging.getLogger(__name__)

MAX_RUNS = 20


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def load_state(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}

    fmt = _detect_format(p)
    if fmt in {"yaml", "yml"}:
        import yaml

        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    else:
        data = json.loads(p.read_text(encoding="utf-8"))

    if not isinstance(data, dict):
        raise ValueError(f"State file must be an object/dict, got {type(data)}")

    return data


def save_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    fmt = _detect_format(p)
    if fmt in {"yaml", "yml"}:
        import yaml

        p.write_text(yaml.safe_dump(state, sort_keys=False) + "\n", encoding="utf-8")
    else:
        p.write_text(json.dumps(state, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def run_entry(handle: TransactionHandle, *, exit_code: int, log_path: Optional[str]) -> Dict[str, Any]:
    """Summarize one run as plain data for the state file."""

    target = handle.target
    facts = handle.record
    verification = facts.verification
    return {
        "finished_at": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
        "version": target.version,
        "arch": facts.arch,
        "dry_run": target.dry_run,
        "state": handle.state.value,
        "exit_code": exit_code,
        "error": str(handle.error) if handle.error else None,
        "error_type": type(handle.error).__name__ if handle.error else None,
        "verified": verification.verified if verification else None,
        "service_user": facts.service_user,
        "backups": [str(b.backup) for b in handle.backups],
        "rollback_failures": [f.error for f in handle.failures],
        "warnings": list(facts.warnings),
        "log_path": log_path,
    }


def record_run(state: Dict[str, Any], entry: Dict[str, Any], handle: TransactionHandle) -> Dict[str, Any]:
    runs = state.setdefault("runs", [])
    runs.append(entry)
    del runs[:-MAX_RUNS]

    if handle.state is TransactionState.COMPLETE and not handle.target.dry_run:
        target = handle.target
        state["installed"] = {
            "version": target.version,
            "arch": handle.record.arch,
            "binary": str(target.binary_path),
            "config": str(target.config_path),
            "unit": str(target.unit_path),
            "ports": target.ports.as_dict(),
            "installed_at": entry["finished_at"],
        }
    return state


@contextlib.contextmanager
def install_lock(state_path: str) -> Iterator[Path]:
    """Hold an exclusive lock next to the state file for the whole run."""

    lock_path = Path(state_path).with_suffix(".lock")
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lock_path, "w") as lock_file:
        try:
            fcntl.flock(lock_file, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            raise InstallLocked(f"Another installation is already running (lock {lock_path})") from e
        logger.debug("Acquired install lock %s", lock_path)
        try:
            yield lock_path
        finally:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
