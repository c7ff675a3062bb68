from __future__ import annotations

from ..errors import VerificationError
from ..lib.verify import verify_artifact
from ..transaction import StepContext, TransactionState


class VerifyArtifactStep:
    step_id = "40_verify_artifact"
    phase = TransactionState.VERIFYING
    mutates_host = False

    def run(self, ctx: StepContext) -> None:
        facts = ctx.facts
        if facts.artifact is None:
            raise VerificationError("No artifact to verify")
        facts.verification = verify_artifact(
            facts.artifact,
            facts.manifest,
            require_checksum=ctx.target.require_checksum,
        )
        if not facts.verification.verified:
            facts.warnings.append(f"Artifact not verified: {facts.verification.reason}")

    def simulate(self, ctx: StepContext) -> list[str]:
        return []
