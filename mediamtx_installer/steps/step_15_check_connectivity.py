from __future__ import annotations

import logging

from ..errors import ConnectivityError
from ..transaction import StepContext, TransactionState

logger = logging.getLogger(__name__)


class CheckConnectivityStep:
    step_id = "15_check_connectivity"
    phase = TransactionState.PROBING
    mutates_host = False

    def run(self, ctx: StepContext) -> None:
        host = ctx.services
        if host.connectivity.check() is not None:
            return

        ctx.facts.warn(f"Cannot confirm network connectivity to {host.connectivity.url}")
        if not host.confirm("Network connectivity could not be confirmed. Continue anyway?", False):
            raise ConnectivityError("Network connectivity required for installation")
        logger.info("Continuing without confirmed connectivity at operator request")

    def simulate(self, ctx: StepContext) -> list[str]:
        return []
