from __future__ import annotations


class InstallerError(Exception):
    """Base class for every failure the installer reports to the operator."""

    exit_code = 1


class DependencyError(InstallerError):
    exit_code = 1


class InstallLocked(InstallerError):
    exit_code = 1


class UnsupportedArchitecture(InstallerError):
    exit_code = 2


class DownloadError(InstallerError):
    exit_code = 3


class ExtractionError(InstallerError):
    exit_code = 3


class InstallError(InstallerError):
    exit_code = 3


class ServiceError(InstallerError):
    exit_code = 3


class VerificationError(InstallerError):
    exit_code = 4


class ChecksumMismatch(VerificationError):
    def __init__(self, filename: str, expected: str, observed: str) -> None:
        super().__init__(
            f"Checksum mismatch for {filename}: expected {expected}, got {observed}"
        )
        self.filename = filename
        self.expected = expected
        self.observed = observed


class InsufficientPermissions(InstallerError):
    exit_code = 5


class ConnectivityError(InstallerError):
    exit_code = 6


class ConfigError(InstallerError):
    exit_code = 7


class InstallInterrupted(InstallerError):
    exit_code = 130


class InstallCancelled(InstallerError):
    """Operator declined to continue; nothing was changed."""

    exit_code = 0


class RollbackActionError(InstallerError):
    """A single compensating action failed. Logged, never fatal."""
