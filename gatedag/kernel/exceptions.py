"""Core exception hierarchy for gatedag.

All gatedag exceptions inherit from GateDAGError so callers can catch the
whole family at once. Gate outcomes (HARD_FAILED / SOFT_FAILED) are stage
states, not exceptions; the classes below cover invalid definitions,
malformed input and infrastructure failures.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gatedag.kernel.domain.run import PipelineResult

# ============================================================================
# Base Exception
# ============================================================================


class GateDAGError(Exception):
    """Base exception for all gatedag errors.

    Catch this to handle every error raised by the framework.
    """

    pass


# ============================================================================
# Configuration & Validation Errors
# ============================================================================


class ConfigurationError(GateDAGError):
    """Raised when configuration is invalid or missing.

    Examples
    --------
    Example usage::

        raise ConfigurationError("environments.staging", "missing 'cluster'")
    """

    def __init__(self, component: str, reason: str) -> None:
        """Initialize configuration error.

        Args
        ----
            component: Name of the component with invalid configuration
            reason: Explanation of what's wrong
        """
        super().__init__(f"Configuration error in '{component}': {reason}")
        self.component = component
        self.reason = reason


class ValidationError(GateDAGError):
    """Raised when a pipeline definition or trigger fails validation.

    Examples
    --------
    Example usage::

        raise ValidationError("branch", "manual triggers require a branch")
    """

    def __init__(self, field: str, constraint: str, value: object = None) -> None:
        """Initialize validation error.

        Args
        ----
            field: Name of the field that failed validation
            constraint: Description of the validation constraint
            value: The invalid value (optional)
        """
        if value is not None:
            msg = f"Validation failed for '{field}': {constraint} (got {value!r})"
        else:
            msg = f"Validation failed for '{field}': {constraint}"
        super().__init__(msg)
        self.field = field
        self.constraint = constraint
        self.value = value


# ============================================================================
# Stage Graph Errors
# ============================================================================


class StageGraphError(GateDAGError):
    """Base exception for stage graph construction errors."""


class CyclicDependencyError(StageGraphError):
    """Raised when the stage dependencies contain a cycle.

    Raised once, when the pipeline definition is loaded. A graph that
    loaded successfully never raises this during a run.
    """


class MissingDependencyError(StageGraphError):
    """Raised when a stage needs a stage that is not defined."""


class DuplicateStageError(StageGraphError):
    """Raised when two stages share a name."""


class InvalidTransitionError(GateDAGError):
    """Raised when a stage execution leaves a terminal state."""


# ============================================================================
# Artifact Errors
# ============================================================================


class TaggingError(GateDAGError):
    """Raised when an artifact tag cannot be built from the run context.

    Examples
    --------
    Example usage::

        raise TaggingError("", "run id must not be empty")
    """

    def __init__(self, run_id: str, reason: str) -> None:
        super().__init__(f"Cannot tag run {run_id!r}: {reason}")
        self.run_id = run_id
        self.reason = reason


class TagStoreError(GateDAGError):
    """Raised when the tag store cannot complete an operation."""


class DuplicateTagError(TagStoreError):
    """Raised when a tag is written twice for the same run."""

    def __init__(self, run_id: str, existing_tag: str | None = None) -> None:
        msg = f"Run '{run_id}' already has a tag"
        if existing_tag:
            msg += f" ({existing_tag})"
        super().__init__(msg)
        self.run_id = run_id
        self.existing_tag = existing_tag


class NotFoundError(TagStoreError):
    """Raised when no tag has been recorded for a run."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"No tag recorded for run '{run_id}'")
        self.run_id = run_id


class ArtifactPublishError(GateDAGError):
    """Raised when a successful run's tag could not be persisted.

    The run is marked FAILED; the full result is attached for reporting.
    """

    def __init__(self, run_id: str, original_error: Exception, result: PipelineResult) -> None:
        self.run_id = run_id
        self.original_error = original_error
        self.result = result
        super().__init__(f"Publishing the artifact of run '{run_id}' failed: {original_error}")


# ============================================================================
# Deployment Errors
# ============================================================================


class UnknownTagError(GateDAGError):
    """Raised when deploying a tag that was never published by a gated run."""

    def __init__(self, tag: str, reason: str | None = None) -> None:
        msg = f"Tag '{tag}' is not recorded in the tag store"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.tag = tag


class DeploymentError(GateDAGError):
    """Raised when the deployment action itself fails.

    Examples
    --------
    Example usage::

        raise DeploymentError("staging", "push.1-abc", "helm exited with status 1")
    """

    def __init__(self, environment: str, tag: str, reason: str) -> None:
        super().__init__(f"Deploying '{tag}' to '{environment}' failed: {reason}")
        self.environment = environment
        self.tag = tag
        self.reason = reason
