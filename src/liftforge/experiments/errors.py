"""Custom exceptions for the experimentation engine.

This module defines the exception hierarchy for experiment-related errors,
providing structured error handling with status codes and error codes.
"""

from typing import Any, Optional


class ExperimentError(Exception):
    """Base exception for all experimentation errors.

    Attributes:
        code: Machine-readable error code
        message: Human-readable error message
        status_code: HTTP status code for API responses
        details: Optional structured details returned to API clients
        retryable: Whether the caller may retry the operation unchanged
    """

    retryable = False

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """Initialize experiment error.

        Args:
            message: Human-readable error description
            code: Machine-readable error code
            status_code: HTTP status code (400, 500, etc.)
            details: Optional structured error details
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class ValidationError(ExperimentError):
    """Raised when an experiment definition or request input is invalid.

    Carries the full list of violations so clients can fix every problem at once.
    """

    def __init__(
        self,
        message: str,
        violations: Optional[list[dict[str, Any]]] = None,
        field: Optional[str] = None,
    ) -> None:
        """Initialize validation error.

        Args:
            message: Description of the validation failure
            violations: Optional list of violation dicts (code, field, message)
            field: Optional field name that failed validation
        """
        details: dict[str, Any] = {}
        if violations:
            details["violations"] = violations
        if field:
            details["field"] = field
        super().__init__(
            message=message,
            code="validation_error",
            status_code=400,
            details=details,
        )
        self.violations = violations or []
        self.field = field


class NotFoundError(ExperimentError):
    """Raised when a referenced resource does not exist."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        """Initialize not found error.

        Args:
            resource_type: Kind of resource (experiment, participant, ...)
            resource_id: ID of the missing resource
        """
        super().__init__(
            message=f"{resource_type.capitalize()} '{resource_id}' not found",
            code=f"{resource_type}_not_found",
            status_code=404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ExperimentNotFoundError(NotFoundError):
    """Raised when an experiment cannot be found."""

    def __init__(self, experiment_id: str) -> None:
        """Initialize experiment not found error.

        Args:
            experiment_id: The ID of the experiment that was not found
        """
        super().__init__("experiment", experiment_id)
        self.experiment_id = experiment_id


class LifecycleError(ExperimentError):
    """Raised when an operation is invalid for the current experiment status."""

    def __init__(
        self,
        experiment_id: str,
        current_status: str,
        operation: str,
        message: Optional[str] = None,
    ) -> None:
        """Initialize lifecycle error.

        Args:
            experiment_id: The ID of the experiment
            current_status: The status the experiment is in
            operation: The operation that was attempted
            message: Optional override for the default message
        """
        super().__init__(
            message=message
            or f"Cannot perform '{operation}' on experiment '{experiment_id}' "
            f"in status '{current_status}'",
            code="lifecycle_error",
            status_code=400,
            details={"currentStatus": current_status, "operation": operation},
        )
        self.experiment_id = experiment_id
        self.current_status = current_status
        self.operation = operation


class ExperimentNotRunningError(LifecycleError):
    """Raised when a new participant arrives at an experiment that is not running."""

    def __init__(self, experiment_id: str, current_status: str) -> None:
        """Initialize experiment not running error.

        Args:
            experiment_id: The ID of the experiment
            current_status: The status the experiment is in
        """
        super().__init__(
            experiment_id=experiment_id,
            current_status=current_status,
            operation="assign",
            message=f"Experiment '{experiment_id}' is not running (status '{current_status}')",
        )
        self.code = "experiment_not_running"


class DeploymentConflictError(ExperimentError):
    """Raised when starting an experiment would collide with a running one."""

    def __init__(self, experiment_id: str, conflicting_ids: list[str]) -> None:
        """Initialize deployment conflict error.

        Args:
            experiment_id: The experiment that was being started
            conflicting_ids: IDs of running experiments on the same page and element
        """
        super().__init__(
            message=f"Experiment '{experiment_id}' conflicts with running experiments: "
            f"{', '.join(conflicting_ids)}",
            code="deployment_conflict",
            status_code=409,
            details={"conflictingIds": conflicting_ids},
        )
        self.experiment_id = experiment_id
        self.conflicting_ids = conflicting_ids


class AttributionMismatchError(ExperimentError):
    """Raised when a conversion names a variant the participant was not assigned to."""

    def __init__(
        self,
        experiment_id: str,
        participant_id: str,
        claimed_variant_id: str,
        assigned_variant_id: Optional[str],
    ) -> None:
        """Initialize attribution mismatch error.

        Args:
            experiment_id: The experiment the conversion was recorded against
            participant_id: The participant that converted
            claimed_variant_id: Variant named by the caller
            assigned_variant_id: Variant actually assigned, None if never assigned
        """
        if assigned_variant_id is None:
            message = (
                f"Participant '{participant_id}' is not assigned in experiment '{experiment_id}'"
            )
        else:
            message = (
                f"Participant '{participant_id}' is assigned to variant "
                f"'{assigned_variant_id}', not '{claimed_variant_id}'"
            )
        super().__init__(
            message=message,
            code="attribution_mismatch",
            status_code=400,
            details={
                "participantId": participant_id,
                "claimedVariantId": claimed_variant_id,
                "assignedVariantId": assigned_variant_id,
            },
        )
        self.experiment_id = experiment_id
        self.participant_id = participant_id
        self.claimed_variant_id = claimed_variant_id
        self.assigned_variant_id = assigned_variant_id


class ComputationGuardError(ExperimentError):
    """Raised when a statistic is undefined for its inputs (zero variance, zero visitors)."""

    def __init__(self, message: str) -> None:
        """Initialize computation guard error.

        Args:
            message: Description of the degenerate input
        """
        super().__init__(message=message, code="computation_guard", status_code=400)


class DependencyUnavailableError(ExperimentError):
    """Raised when the experiment store cannot be reached within its retry budget."""

    retryable = True

    def __init__(self, dependency: str, operation: str, attempts: int) -> None:
        """Initialize dependency unavailable error.

        Args:
            dependency: Name of the unavailable dependency
            operation: Operation that was attempted
            attempts: Number of attempts made before giving up
        """
        super().__init__(
            message=f"{dependency} unavailable during '{operation}' after {attempts} attempts",
            code="dependency_unavailable",
            status_code=503,
            details={"dependency": dependency, "operation": operation, "retryable": True},
        )
        self.dependency = dependency
        self.operation = operation
        self.attempts = attempts


class StoreTimeoutError(ExperimentError):
    """Raised by store backends when a single call times out or the connection drops."""

    retryable = True

    def __init__(self, operation: str) -> None:
        """Initialize store timeout error.

        Args:
            operation: Store operation that timed out
        """
        super().__init__(
            message=f"Store operation '{operation}' timed out",
            code="store_timeout",
            status_code=503,
        )
        self.operation = operation
