from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence

import requests

from ..errors import DownloadError
from .command import CommandError, run_cmd

logger = logging.getLogger(__name__)

ARTIFACT_TIMEOUT = 30
MANIFEST_TIMEOUT = 10
DEFAULT_ATTEMPTS = 3
RETRY_DELAY = 2.0


@dataclass
class Artifact:
    url: str
    path: Path
    size: int
    expected_digest: Optional[str] = None
    observed_digest: Optional[str] = None

    @property
    def filename(self) -> str:
        return self.url.rsplit("/", 1)[-1]


class NotFound(Exception):
    """The server answered definitively that the resource does not exist."""


class TransferFailed(Exception):
    """A single attempt failed for a reason that may go away on retry."""


class Downloader(Protocol):
    name: str

    def available(self) -> bool:
        ...

    def download(self, url: str, dest: Path, *, timeout: float) -> None:
        ...


class RequestsDownloader:
    name = "requests"

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self._session = session or requests.Session()

    def available(self) -> bool:
        return True

    def download(self, url: str, dest: Path, *, timeout: float) -> None:
        try:
            with self._session.get(url, stream=True, timeout=timeout, allow_redirects=True) as r:
                if r.status_code == 404:
                    raise NotFound(url)
                try:
                    r.raise_for_status()
                except requests.HTTPError as e:
                    raise TransferFailed(str(e)) from e
                with dest.open("wb") as f:
                    for chunk in r.iter_content(chunk_size=1 << 16):
                        if chunk:
                            f.write(chunk)
        except requests.RequestException as e:
            raise TransferFailed(str(e)) from e


_HTTP_ERROR_EXIT = {"curl": 22, "wget": 8}


class CommandDownloader:
    """curl or wget as a fallback transport."""

    def __init__(self, name: str, which: Callable[[str], Optional[str]] = shutil.which) -> None:
        if name not in {"curl", "wget"}:
            raise ValueError(f"unsupported download tool: {name}")
        self.name = name
        self._which = which

    def available(self) -> bool:
        return bool(self._which(self.name))

    def _argv(self, url: str, dest: Path, timeout: float) -> List[str]:
        if self.name == "curl":
            return ["curl", "-fsSL", "--connect-timeout", str(int(timeout)), "-o", str(dest), url]
        return ["wget", "-nv", f"--timeout={int(timeout)}", "--tries=1", "-O", str(dest), url]

    def download(self, url: str, dest: Path, *, timeout: float) -> None:
        try:
            r = run_cmd(self._argv(url, dest, timeout), check=False, timeout=timeout * 10)
        except CommandError as e:
            raise TransferFailed(str(e)) from e
        if r.returncode == 0:
            return
        # curl -f exits 22 on HTTP >= 400, wget exits 8 on a server error response.
        if r.returncode == _HTTP_ERROR_EXIT[self.name] and "404" in r.stderr:
            raise NotFound(url)
        raise TransferFailed(f"{self.name} exited {r.returncode}: {r.stderr.strip()}")


def default_downloaders() -> List[Downloader]:
    return [RequestsDownloader(), CommandDownloader("curl"), CommandDownloader("wget")]


@dataclass
class ArtifactFetcher:
    """Download with bounded retries and a fallback chain of transports."""

    downloaders: Sequence[Downloader] = field(default_factory=default_downloaders)
    attempts: int = DEFAULT_ATTEMPTS
    retry_delay: float = RETRY_DELAY
    sleep: Callable[[float], None] = time.sleep

    def _fetch(self, url: str, dest: Path, *, timeout: float) -> bool:
        """Return True once dest holds a non-empty download.

        Raises NotFound when a server says the URL does not exist.
        """

        tried_any = False
        for dl in self.downloaders:
            if not dl.available():
                logger.debug("Downloader %s unavailable, skipping", dl.name)
                continue
            tried_any = True
            for attempt in range(1, self.attempts + 1):
                logger.debug("Downloading %s via %s (attempt %d/%d)", url, dl.name, attempt, self.attempts)
                try:
                    dl.download(url, dest, timeout=timeout)
                except TransferFailed as e:
                    logger.warning("Download attempt %d/%d via %s failed: %s", attempt, self.attempts, dl.name, e)
                else:
                    if dest.exists() and dest.stat().st_size > 0:
                        return True
                    logger.warning("Download via %s produced an empty file", dl.name)
                if dest.exists():
                    dest.unlink()
                if attempt < self.attempts:
                    self.sleep(self.retry_delay)
            logger.warning("Giving up on %s after %d attempts", dl.name, self.attempts)
        if not tried_any:
            raise DownloadError("No download tool available (requests, curl, wget)")
        return False

    def fetch_artifact(self, url: str, dest_dir: Path) -> Artifact:
        dest = dest_dir / url.rsplit("/", 1)[-1]
        logger.info("Downloading %s", url)
        try:
            ok = self._fetch(url, dest, timeout=ARTIFACT_TIMEOUT)
        except NotFound as e:
            raise DownloadError(f"Artifact not found: {url}") from e
        if not ok or not dest.exists() or dest.stat().st_size == 0:
            raise DownloadError(f"Downloaded file is missing or empty: {url}")
        size = dest.stat().st_size
        logger.info("Downloaded %s (%d bytes)", dest.name, size)
        return Artifact(url=url, path=dest, size=size)

    def fetch_manifest(self, url: str, dest_dir: Path) -> Optional[str]:
        """Best-effort: None when the manifest cannot be obtained."""

        dest = dest_dir / "checksums.txt"
        try:
            ok = self._fetch(url, dest, timeout=MANIFEST_TIMEOUT)
        except (NotFound, DownloadError) as e:
            logger.warning("Could not download checksum manifest (%s)", e)
            return None
        if not ok:
            logger.warning("Could not download checksum manifest, skipping verification")
            return None
        return dest.read_text(encoding="utf-8", errors="replace")


def check_release_exists(api_url: str, version: str, *, session: Optional[requests.Session] = None) -> None:
    """Best-effort release lookup; only a definitive 404 is fatal."""

    if not api_url:
        return
    url = f"{api_url.rstrip('/')}/{version}"
    logger.info("Verifying version %s exists...", version)
    try:
        r = (session or requests).get(url, timeout=MANIFEST_TIMEOUT)
    except requests.RequestException as e:
        logger.warning("Could not verify version %s: %s", version, e)
        return
    if r.status_code == 404:
        raise DownloadError(
            f"Version {version} not found (see https://github.com/bluenviron/mediamtx/releases)"
        )
    if r.status_code != 200:
        logger.warning("Release lookup returned HTTP %s; continuing", r.status_code)
        return
    logger.info("Version %s verified", version)
