"""
contract-deployments: dependency-ordered, resumable deployment of upgradeable EVM contracts
"""

from importlib.metadata import PackageNotFoundError, version

from .context import OrchestrationContext
from .descriptors import load_descriptors, parse_descriptors
from .exceptions import (
    AlreadyInitializedError,
    AuthorizationError,
    ConfigurationError,
    ConfirmationTimeoutError,
    CyclicDependencyError,
    FingerprintMismatchError,
    InternalOrderingError,
    OrchestrationError,
    RunLockedError,
    SubmissionError,
    TransactionRevertedError,
    UnresolvedDependencyError,
)
from .orchestrator import Orchestrator
from .resolver import resolve_order
from .types import DeploymentRecord, DeploymentUnit, RunReport, WiringAction, WiringRecord

try:
    __version__ = version("contract-deployments")
except PackageNotFoundError:
    __version__ = None

__all__ = [
    "Orchestrator",
    "OrchestrationContext",
    "load_descriptors",
    "parse_descriptors",
    "resolve_order",
    "DeploymentUnit",
    "WiringAction",
    "DeploymentRecord",
    "WiringRecord",
    "RunReport",
    "OrchestrationError",
    "ConfigurationError",
    "CyclicDependencyError",
    "UnresolvedDependencyError",
    "FingerprintMismatchError",
    "SubmissionError",
    "ConfirmationTimeoutError",
    "AuthorizationError",
    "AlreadyInitializedError",
    "TransactionRevertedError",
    "InternalOrderingError",
    "RunLockedError",
]
