from __future__ import annotations

import logging

from ..errors import ServiceError
from ..lib.command import CommandError
from ..lib.systemd import ServiceManager, render_unit
from ..transaction import StepContext, TransactionState

logger = logging.getLogger(__name__)


def require_service_manager(ctx: StepContext) -> ServiceManager:
    sm = ctx.services.service_manager
    if sm is None:
        raise ServiceError("systemd is required to register the MediaMTX service")
    return sm


class ServiceUnitStep:
    step_id = "75_service_unit"
    phase = TransactionState.REGISTERING_SERVICE
    mutates_host = True

    def run(self, ctx: StepContext) -> None:
        target = ctx.target
        sm = require_service_manager(ctx)
        user = ctx.facts.service_user or target.service_user

        ctx.write_file(target.unit_path, render_unit(target, user=user), mode=0o644, unit=target.unit_name)
        try:
            sm.daemon_reload()
        except CommandError as e:
            raise ServiceError(f"Failed to reload systemd: {e}") from e
        logger.info("Service unit written: %s", target.unit_path)

    def simulate(self, ctx: StepContext) -> list[str]:
        target = ctx.target
        plan = []
        if target.unit_path.exists():
            plan.append(f"Back up {target.unit_path} to {target.backup_dir}")
        plan.append(f"Write {target.unit_path} and reload systemd")
        return plan
