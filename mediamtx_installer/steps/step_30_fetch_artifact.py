from __future__ import annotations

import logging

from ..transaction import StepContext, TransactionState

logger = logging.getLogger(__name__)


class FetchArtifactStep:
    step_id = "30_fetch_artifact"
    phase = TransactionState.FETCHING
    mutates_host = False

    def run(self, ctx: StepContext) -> None:
        target = ctx.target
        host = ctx.services

        host.release_check(target.release_api_url, target.version)
        ctx.check_cancelled()

        ctx.facts.artifact = host.fetcher.fetch_artifact(target.artifact_url, ctx.work_dir)
        ctx.facts.manifest = host.fetcher.fetch_manifest(target.manifest_url, ctx.work_dir)

    def simulate(self, ctx: StepContext) -> list[str]:
        return []
