from __future__ import annotations

from ..errors import ExtractionError
from ..lib.archive import extract_binary
from ..transaction import StepContext, TransactionState


class ExtractArtifactStep:
    step_id = "45_extract_artifact"
    phase = TransactionState.VERIFYING
    mutates_host = False

    def run(self, ctx: StepContext) -> None:
        artifact = ctx.facts.artifact
        if artifact is None:
            raise ExtractionError("No artifact to extract")
        ctx.facts.binary = extract_binary(
            artifact.path,
            ctx.work_dir / "extract",
            member_name=ctx.target.binary_name,
        )

    def simulate(self, ctx: StepContext) -> list[str]:
        return []
