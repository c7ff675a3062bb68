from __future__ import annotations

import logging

from ..errors import ServiceError
from ..lib.command import CommandError
from ..rollback import DisableService
from ..transaction import StepContext, TransactionState
from .step_75_service_unit import require_service_manager

logger = logging.getLogger(__name__)


class EnableServiceStep:
    step_id = "80_enable_service"
    phase = TransactionState.REGISTERING_SERVICE
    mutates_host = True

    def run(self, ctx: StepContext) -> None:
        unit = ctx.target.unit_name
        sm = require_service_manager(ctx)

        if sm.is_enabled(unit):
            logger.info("Service %s already enabled", unit)
            return
        try:
            sm.enable(unit)
        except CommandError as e:
            raise ServiceError(f"Failed to enable {unit}: {e}") from e
        ctx.record(DisableService(unit))
        logger.info("Service %s enabled", unit)

    def simulate(self, ctx: StepContext) -> list[str]:
        return [f"Enable {ctx.target.unit_name}"]
