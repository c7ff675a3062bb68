from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

from .errors import InstallError, InstallerError, InstallInterrupted
from .transaction import Step, TransactionEngine, TransactionHandle, TransactionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    handle: TransactionHandle
    ran_steps: List[str]
    simulated_steps: List[str]


def run_transaction(
    *,
    engine: TransactionEngine,
    handle: TransactionHandle,
    steps: Sequence[Step],
) -> PipelineResult:
    """Run steps in order and commit, or roll everything back and re-raise.

    Errors outside the installer taxonomy are wrapped in InstallError so the
    caller always sees an exit code.
    """

    ran: List[str] = []
    simulated: List[str] = []

    try:
        for step in steps:
            logger.info("Running step %s", step.step_id)
            engine.run_step(handle, step)
            if engine.dry_run and step.mutates_host:
                simulated.append(step.step_id)
            else:
                ran.append(step.step_id)
        engine.commit(handle)
    except InstallerError as e:
        _ensure_aborted(engine, handle, e)
        raise
    except KeyboardInterrupt as e:
        _ensure_aborted(engine, handle, e)
        raise InstallInterrupted("Installation interrupted") from e
    except Exception as e:
        logger.exception("Unexpected failure in step")
        _ensure_aborted(engine, handle, e)
        raise InstallError(f"Installation failed: {e}") from e

    return PipelineResult(handle=handle, ran_steps=ran, simulated_steps=simulated)


def _ensure_aborted(engine: TransactionEngine, handle: TransactionHandle, error: BaseException) -> None:
    # The engine aborts failed steps itself; this covers anything raised between them.
    handle.error = error
    if handle.state is not TransactionState.ROLLED_BACK:
        engine.abort(handle)
