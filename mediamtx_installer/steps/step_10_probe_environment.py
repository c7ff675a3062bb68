from __future__ import annotations

import logging

from ..transaction import StepContext, TransactionState

logger = logging.getLogger(__name__)


class ProbeEnvironmentStep:
    step_id = "10_probe_environment"
    phase = TransactionState.PROBING
    mutates_host = False

    def run(self, ctx: StepContext) -> None:
        host = ctx.services
        facts = ctx.facts
        facts.arch = ctx.target.arch

        pm = host.package_manager
        facts.package_manager = pm.name if pm is not None else None
        if pm is None:
            facts.warn("No supported package manager found; missing tools cannot be installed")
        else:
            logger.info("Detected package manager: %s", pm.name)

        sm = host.service_manager
        facts.service_manager = sm.name if sm is not None else None
        if sm is None:
            facts.warn("No supported service manager found; service registration will fail")

        logger.info(
            "Target: MediaMTX %s for linux/%s into %s",
            ctx.target.version,
            facts.arch,
            ctx.target.install_dir,
        )

    def simulate(self, ctx: StepContext) -> list[str]:
        return []
