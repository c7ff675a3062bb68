from __future__ import annotations

import logging

from ..lib.command import CommandError
from ..rollback import RestoreOwnership
from ..transaction import StepContext, TransactionState

logger = logging.getLogger(__name__)


class PrepareDirectoriesStep:
    step_id = "72_prepare_directories"
    phase = TransactionState.REGISTERING_SERVICE
    mutates_host = True

    def run(self, ctx: StepContext) -> None:
        target = ctx.target
        ctx.ensure_dir(target.log_dir)

        user = ctx.facts.service_user or target.service_user
        if user == "root":
            return

        accounts = ctx.services.accounts
        # A pre-existing config dir may be shared; only the world-readable file is needed.
        dirs = [target.log_dir]
        if ctx.created_this_run(target.config_dir):
            dirs.insert(0, target.config_dir)
        else:
            logger.info("Leaving ownership of existing %s unchanged", target.config_dir)

        for d in dirs:
            before = accounts.ownership(d)
            try:
                accounts.chown(d, user=user)
            except (OSError, KeyError, CommandError) as e:
                ctx.facts.warn(f"Could not set ownership of {d} to {user}: {e}")
                continue
            if not ctx.created_this_run(d) and accounts.ownership(d) != before:
                ctx.record(RestoreOwnership(d, uid=before[0], gid=before[1]))

    def simulate(self, ctx: StepContext) -> list[str]:
        target = ctx.target
        plan = []
        if not target.log_dir.exists():
            plan.append(f"Create {target.log_dir}")
        owned = [target.log_dir] if target.config_dir.exists() else [target.config_dir, target.log_dir]
        plan.append(f"Set ownership of {' and '.join(map(str, owned))} to {target.service_user}")
        return plan
