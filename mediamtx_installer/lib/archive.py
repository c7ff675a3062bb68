from __future__ import annotations

import logging
import shutil
import tarfile
from pathlib import Path

from ..errors import ExtractionError

logger = logging.getLogger(__name__)


def extract_binary(tarball: Path, dest_dir: Path, *, member_name: str = "mediamtx") -> Path:
    """Pull the single executable out of a release tarball.

    Only the named regular file is read; nothing else in the archive is
    written to disk, so hostile member paths never reach the filesystem.
    """

    try:
        with tarfile.open(tarball, mode="r:gz") as tar:
            member = None
            for m in tar.getmembers():
                name = m.name[2:] if m.name.startswith("./") else m.name
                if name == member_name:
                    member = m
                    break
            if member is None:
                raise ExtractionError(f"{member_name} binary not found in archive")
            if not member.isfile():
                raise ExtractionError(f"{member_name} in archive is not a regular file")

            src = tar.extractfile(member)
            if src is None:
                raise ExtractionError(f"Cannot read {member_name} from archive")

            dest_dir.mkdir(parents=True, exist_ok=True)
            out = dest_dir / member_name
            with src, out.open("wb") as f:
                shutil.copyfileobj(src, f)
    except (tarfile.TarError, EOFError, OSError) as e:
        raise ExtractionError(f"Invalid or corrupted tarball {tarball.name}: {e}") from e

    if out.stat().st_size == 0:
        raise ExtractionError(f"{member_name} in archive is empty")

    out.chmod(0o755)
    logger.info("Extraction completed (%s, %d bytes)", out.name, out.stat().st_size)
    return out
