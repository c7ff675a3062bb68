from __future__ import annotations

import logging
import os
import shutil

from ..errors import InstallError, VerificationError
from ..lib.command import CommandError, run_cmd
from ..rollback import RemovePath
from ..transaction import StepContext, TransactionState
from .step_25_detect_existing import first_line

logger = logging.getLogger(__name__)


class InstallBinaryStep:
    step_id = "50_install_binary"
    phase = TransactionState.INSTALLING
    mutates_host = True

    def run(self, ctx: StepContext) -> None:
        facts = ctx.facts
        target = ctx.target
        # The verifier must have accepted the artifact, even if only as unverified.
        if facts.verification is None:
            raise VerificationError("Refusing to install an artifact that was never checked")
        if facts.binary is None:
            raise InstallError("No extracted binary to install")

        ctx.ensure_dir(target.install_dir)
        dest = target.binary_path
        staging = dest.with_name(f".{dest.name}.new")

        try:
            shutil.copyfile(facts.binary, staging)
            staging.chmod(0o755)
            try:
                r = run_cmd([str(staging), "--version"], check=False, timeout=10)
            except CommandError as e:
                raise InstallError(f"Binary self-test failed: {e}") from e
            if r.returncode != 0:
                raise InstallError(f"Binary self-test failed (exit {r.returncode}): {r.stderr.strip()}")

            existed = dest.exists()
            if existed:
                ctx.backup(dest)
            os.replace(staging, dest)
        except OSError as e:
            raise InstallError(f"Failed to install binary to {dest}: {e}") from e
        finally:
            if staging.exists():
                staging.unlink()

        if not existed:
            ctx.record(RemovePath(dest))
        facts.installed_version = first_line(r.stdout or r.stderr)
        logger.info("Binary installed: %s", dest)

    def simulate(self, ctx: StepContext) -> list[str]:
        target = ctx.target
        plan = []
        if not target.install_dir.exists():
            plan.append(f"Create {target.install_dir}")
        if target.binary_path.exists():
            plan.append(f"Back up {target.binary_path} to {target.backup_dir}")
        plan.append(f"Install {target.binary_name} {target.version} to {target.binary_path}")
        return plan
