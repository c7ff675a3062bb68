from __future__ import annotations

import enum
import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..errors import ChecksumMismatch, VerificationError
from .fetch import Artifact

logger = logging.getLogger(__name__)

_SHA256_RE = re.compile(r"^[0-9a-fA-F]{64}$")


class VerificationStatus(str, enum.Enum):
    VERIFIED = "verified"
    UNVERIFIED = "unverified"


@dataclass(frozen=True)
class VerificationResult:
    status: VerificationStatus
    reason: str
    expected: Optional[str] = None
    observed: Optional[str] = None

    @property
    def verified(self) -> bool:
        return self.status is VerificationStatus.VERIFIED


def sha256_file(path: Path, *, chunk_size: int = 1 << 20) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            h.update(chunk)
    return h.hexdigest()


def find_manifest_digest(manifest: str, filename: str) -> Optional[str]:
    """Return the digest listed for exactly `filename` in sha256sum format."""

    for line in manifest.splitlines():
        parts = line.strip().split(None, 1)
        if len(parts) != 2:
            continue
        digest, name = parts
        # sha256sum marks binary mode with a leading '*'
        name = name.strip().lstrip("*")
        if name != filename:
            continue
        if not _SHA256_RE.match(digest):
            logger.warning("Ignoring malformed digest for %s in manifest", filename)
            return None
        return digest.lower()
    return None


def verify_artifact(
    artifact: Artifact,
    manifest: Optional[str],
    *,
    require_checksum: bool = False,
) -> VerificationResult:
    """Compare the artifact against its manifest entry.

    A mismatch always raises. A missing manifest or entry is reported as
    unverified unless require_checksum is set.
    """

    observed = sha256_file(artifact.path)
    artifact.observed_digest = observed
    logger.debug("Observed sha256 %s for %s", observed, artifact.filename)

    if manifest is None:
        reason = "checksum manifest could not be downloaded"
    else:
        expected = find_manifest_digest(manifest, artifact.filename)
        if expected is not None:
            artifact.expected_digest = expected
            if expected != observed.lower():
                raise ChecksumMismatch(artifact.filename, expected, observed)
            logger.info("Checksum verification passed")
            return VerificationResult(
                status=VerificationStatus.VERIFIED,
                reason="sha256 matches manifest",
                expected=expected,
                observed=observed,
            )
        reason = f"no manifest entry for {artifact.filename}"

    if require_checksum:
        raise VerificationError(f"Checksum verification required but {reason}")

    logger.warning("Reduced-assurance installation: %s", reason)
    return VerificationResult(status=VerificationStatus.UNVERIFIED, reason=reason, observed=observed)
