from __future__ import annotations

import logging

from ..lib.command import CommandError
from ..rollback import DeleteServiceAccount
from ..transaction import StepContext, TransactionState

logger = logging.getLogger(__name__)


class ServiceAccountStep:
    step_id = "70_service_account"
    phase = TransactionState.REGISTERING_SERVICE
    mutates_host = True

    def run(self, ctx: StepContext) -> None:
        name = ctx.target.service_user
        accounts = ctx.services.accounts

        if accounts.exists(name):
            logger.info("Service account %s already exists", name)
            ctx.facts.service_user = name
            return

        try:
            accounts.create_system_account(name)
        except CommandError as e:
            # Running as root is a degraded but working setup.
            ctx.facts.warn(f"Failed to create user {name}, service will run as root: {e}")
            ctx.facts.service_user = "root"
            return
        ctx.record(DeleteServiceAccount(name))
        ctx.facts.service_user = name

    def simulate(self, ctx: StepContext) -> list[str]:
        name = ctx.target.service_user
        if ctx.services.accounts.exists(name):
            return []
        return [f"Create system account {name}"]
