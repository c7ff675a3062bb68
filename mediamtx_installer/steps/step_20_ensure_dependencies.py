from __future__ import annotations

import logging

from ..lib.pkg import OPTIONAL_COMMANDS, REQUIRED_COMMANDS, ensure_commands
from ..transaction import StepContext, TransactionState

logger = logging.getLogger(__name__)


class EnsureDependenciesStep:
    """Install missing host tools.

    Packages installed here are not part of the rollback stack: removing
    them again could take out software other programs came to rely on.
    """

    step_id = "20_ensure_dependencies"
    phase = TransactionState.PROBING
    mutates_host = True

    def run(self, ctx: StepContext) -> None:
        host = ctx.services
        report = ensure_commands(manager=host.package_manager, which=host.which)
        if report.installed:
            ctx.facts.warn(
                "Installed packages for %s; these are kept if the installation is rolled back"
                % ", ".join(report.installed)
            )
        for cmd in report.missing_optional:
            ctx.facts.warnings.append(f"Optional tool {cmd} is not available")

    def simulate(self, ctx: StepContext) -> list[str]:
        which = ctx.services.which
        missing = [c for c in list(REQUIRED_COMMANDS) + list(OPTIONAL_COMMANDS) if not which(c)]
        if not missing:
            return []
        pm = ctx.services.package_manager
        via = pm.name if pm is not None else "no package manager"
        return [f"Install packages for {', '.join(missing)} via {via}"]
