from __future__ import annotations

import logging

from ..lib import mtx_config
from ..transaction import StepContext, TransactionState

logger = logging.getLogger(__name__)


class WriteConfigStep:
    step_id = "60_write_config"
    phase = TransactionState.CONFIGURING
    mutates_host = True

    def run(self, ctx: StepContext) -> None:
        target = ctx.target
        ctx.ensure_dir(target.config_dir)
        ctx.write_file(target.config_path, mtx_config.render(target), mode=0o644)
        mtx_config.check_roundtrip(target.config_path, target)
        logger.info("Configuration created: %s", target.config_path)

    def simulate(self, ctx: StepContext) -> list[str]:
        target = ctx.target
        plan = []
        if target.config_path.exists():
            plan.append(f"Back up {target.config_path} to {target.backup_dir}")
        ports = ", ".join(f"{k}={v}" for k, v in target.ports.as_dict().items())
        plan.append(f"Write {target.config_path} ({ports})")
        return plan
