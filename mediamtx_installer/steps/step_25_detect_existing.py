from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..errors import InstallCancelled
from ..lib.command import CommandError, run_cmd
from ..transaction import StepContext, TransactionState

logger = logging.getLogger(__name__)


def first_line(text: str) -> Optional[str]:
    text = text.strip()
    return text.splitlines()[0] if text else None


def installed_version(binary: Path) -> Optional[str]:
    try:
        r = run_cmd([str(binary), "--version"], check=False, timeout=10)
    except (CommandError, OSError):
        return None
    if r.returncode != 0:
        return None
    return first_line(r.stdout or r.stderr)


class DetectExistingStep:
    step_id = "25_detect_existing"
    phase = TransactionState.PROBING
    mutates_host = False

    def run(self, ctx: StepContext) -> None:
        binary = ctx.target.binary_path
        if not binary.exists():
            return

        facts = ctx.facts
        facts.existing_install = True
        facts.existing_version = installed_version(binary) or "unknown version"
        logger.warning("MediaMTX is already installed at %s (%s)", binary, facts.existing_version)

        if ctx.target.force:
            logger.info("--force given, upgrading without asking")
            return
        if ctx.dry_run:
            logger.info("[DRY RUN] Would ask before upgrading the existing installation")
            return
        question = f"Upgrade existing installation to {ctx.target.version}?"
        if not ctx.services.confirm(question, False):
            raise InstallCancelled("Installation cancelled")

    def simulate(self, ctx: StepContext) -> list[str]:
        return []
