"""Unit tests for custom exception classes."""

import pytest

from contract_deployments.exceptions import (
    AlreadyInitializedError,
    ArtifactNotFoundError,
    AuthorizationError,
    ConfigurationError,
    ConfirmationTimeoutError,
    CyclicDependencyError,
    FingerprintMismatchError,
    InternalOrderingError,
    OrchestrationError,
    RunLockedError,
    StateCorruptedError,
    SubmissionError,
    TransactionRejectedError,
    TransactionRevertedError,
    UnresolvedDependencyError,
)


class TestExceptionCatching:
    """Test that exceptions can be caught as their base types."""

    @pytest.mark.parametrize(
        "exc",
        [
            ConfigurationError("test"),
            UnresolvedDependencyError("A", "B"),
            CyclicDependencyError(["A", "B"]),
            FingerprintMismatchError("test"),
            ArtifactNotFoundError("test"),
            StateCorruptedError("test"),
        ],
    )
    def test_configuration_errors_are_value_errors(self, exc):
        """Test that configuration problems can be caught as ValueError."""
        with pytest.raises(ValueError):
            raise exc

    def test_catch_artifact_not_found_as_file_not_found_error(self):
        """Test that ArtifactNotFoundError can be caught as FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            raise ArtifactNotFoundError("test")

    def test_catch_submission_error_as_connection_error(self):
        """Test that SubmissionError can be caught as ConnectionError."""
        with pytest.raises(ConnectionError):
            raise SubmissionError("test")

    def test_catch_timeout_as_timeout_error(self):
        """Test that ConfirmationTimeoutError can be caught as TimeoutError."""
        with pytest.raises(TimeoutError):
            raise ConfirmationTimeoutError("test")

    def test_catch_authorization_as_permission_error(self):
        """Test that AuthorizationError can be caught as PermissionError."""
        with pytest.raises(PermissionError):
            raise AuthorizationError("test")

    def test_catch_all_as_orchestration_error(self):
        """Test that all custom exceptions can be caught as OrchestrationError."""
        exceptions = [
            ConfigurationError("test"),
            SubmissionError("test"),
            ConfirmationTimeoutError("test"),
            AuthorizationError("test"),
            AlreadyInitializedError("test"),
            TransactionRevertedError("test"),
            TransactionRejectedError("test"),
            InternalOrderingError("test"),
            RunLockedError("test"),
        ]

        for exc in exceptions:
            with pytest.raises(OrchestrationError):
                raise exc

    def test_runtime_failures_are_not_configuration_errors(self):
        """Test that submission failures are distinguishable from configuration errors."""
        for exc in (SubmissionError("test"), AuthorizationError("test"), InternalOrderingError("test")):
            assert not isinstance(exc, ConfigurationError)


class TestExceptionDetails:
    """Test exception attributes and messages."""

    def test_cycle_message(self):
        """Test that the cycle is printed closed."""
        exc = CyclicDependencyError(["A", "B"])

        assert exc.cycle == ["A", "B"]
        assert str(exc) == "Dependency cycle detected: A -> B -> A"

    def test_unresolved_attributes(self):
        """Test that the referencing and missing names are kept."""
        exc = UnresolvedDependencyError("ResolveController", "CellIDRegistry")

        assert exc.unit == "ResolveController"
        assert exc.missing == "CellIDRegistry"
        assert "CellIDRegistry" in str(exc)

    def test_revert_reason(self):
        """Test that the decoded revert reason is kept."""
        exc = TransactionRevertedError("call reverted", "Registry: zero address")

        assert exc.reason == "Registry: zero address"
        assert TransactionRevertedError("call reverted").reason is None
