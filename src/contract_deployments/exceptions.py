"""Custom exception classes for contract-deployments library."""

from typing import List, Optional


class OrchestrationError(Exception):
    """Base exception for deployment orchestration errors."""

    pass


class ConfigurationError(OrchestrationError, ValueError):
    """Raised for malformed descriptors or unknown references.

    Always raised before any transaction is submitted.
    """

    pass


class UnresolvedDependencyError(ConfigurationError):
    """Raised when a unit or wiring action references an undeclared unit."""

    def __init__(self, unit: str, missing: str):
        self.unit = unit
        self.missing = missing
        super().__init__(f"'{unit}' references unknown unit '{missing}'")


class CyclicDependencyError(ConfigurationError):
    """Raised when unit dependencies do not form a DAG."""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        path = " -> ".join(cycle + cycle[:1])
        super().__init__(f"Dependency cycle detected: {path}")


class FingerprintMismatchError(ConfigurationError):
    """Raised when a protected unit's arguments changed since it was deployed."""

    pass


class ArtifactNotFoundError(ConfigurationError, FileNotFoundError):
    """Raised when a compiled contract artifact is not found."""

    pass


class StateCorruptedError(ConfigurationError):
    """Raised when a network state file cannot be parsed."""

    pass


class SubmissionError(OrchestrationError, ConnectionError):
    """Raised for transient network/RPC failures while sending."""

    pass


class ConfirmationTimeoutError(OrchestrationError, TimeoutError):
    """Raised when a transaction is not confirmed after all resubmissions.

    Retryable by re-running the orchestration later.
    """

    pass


class AuthorizationError(OrchestrationError, PermissionError):
    """Raised when a contract rejects the deployer for lack of privilege."""

    pass


class AlreadyInitializedError(OrchestrationError):
    """Raised when a contract's single-initialization guard rejects a call."""

    pass


class TransactionRevertedError(OrchestrationError):
    """Raised when a transaction reverts for a reason other than authorization."""

    def __init__(self, message: str, reason: Optional[str] = None):
        self.reason = reason
        super().__init__(message)


class TransactionRejectedError(OrchestrationError):
    """Raised when a node permanently refuses a transaction (e.g. insufficient funds)."""

    pass


class InternalOrderingError(OrchestrationError, RuntimeError):
    """Raised when a referenced unit has no usable record at execution time."""

    pass


class RunLockedError(OrchestrationError, RuntimeError):
    """Raised when another orchestration run holds the network lock."""

    pass
