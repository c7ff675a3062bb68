from .step_10_probe_environment import ProbeEnvironmentStep
from .step_15_check_connectivity import CheckConnectivityStep
from .step_20_ensure_dependencies import EnsureDependenciesStep
from .step_25_detect_existing import DetectExistingStep
from .step_30_fetch_artifact import FetchArtifactStep
from .step_40_verify_artifact import VerifyArtifactStep
from .step_45_extract_artifact import ExtractArtifactStep
from .step_50_install_binary import InstallBinaryStep
from .step_60_write_config import WriteConfigStep
from .step_70_service_account import ServiceAccountStep
from .step_72_prepare_directories import PrepareDirectoriesStep
from .step_75_service_unit import ServiceUnitStep
from .step_80_enable_service import EnableServiceStep

__all__ = [
    "ProbeEnvironmentStep",
    "CheckConnectivityStep",
    "EnsureDependenciesStep",
    "DetectExistingStep",
    "FetchArtifactStep",
    "VerifyArtifactStep",
    "ExtractArtifactStep",
    "InstallBinaryStep",
    "WriteConfigStep",
    "ServiceAccountStep",
    "PrepareDirectoriesStep",
    "ServiceUnitStep",
    "EnableServiceStep",
]
