"""Service layer exception classes for Batch QA Tracker.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application. Every exception carries a
``kind`` tag that callers (the CLI, or any other transport) use to classify
the failure without matching on class names.

Exception Hierarchy:
    ServiceError (base)
    ├── NotFoundError                      kind = "not_found"
    │   ├── BatchNotFound
    │   ├── RecipeNotFound
    │   ├── CheckpointNotFound
    │   ├── LotNotFound
    │   ├── MaterialNotFound
    │   ├── ProductNotFound
    │   ├── BatchIngredientNotFound
    │   └── ReleaseNotFound
    ├── ValidationError                    kind = "validation_failed"
    │   └── InvalidRecipe
    ├── PreconditionFailed                 kind = "precondition_failed"
    │   ├── IncompleteQA
    │   ├── ReleaseGatesNotMet
    │   ├── InvalidReleaseTransition
    │   ├── BatchAlreadyCompleted
    │   └── PermissionDenied
    ├── ConflictingState                   kind = "conflicting_state"
    └── CollaboratorUnavailable            kind = "collaborator_unavailable"
"""

from typing import Any, Dict, List, Optional


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    kind = "service_error"

    def details(self) -> Dict[str, Any]:
        """Structured attributes of the error, for rendering by callers."""
        return {}


# ============================================================================
# Not found
# ============================================================================


class NotFoundError(ServiceError):
    """Raised when a referenced record does not exist."""

    kind = "not_found"
    entity = "Record"

    def __init__(self, identifier: Any):
        self.identifier = identifier
        super().__init__(f"{self.entity} with ID {identifier} not found")

    def details(self) -> Dict[str, Any]:
        return {"entity": self.entity, "id": self.identifier}


class BatchNotFound(NotFoundError):
    """Raised when a batch cannot be found by ID.

    Example:
        >>> raise BatchNotFound(12)
        BatchNotFound: Batch with ID 12 not found
    """

    entity = "Batch"

    @property
    def batch_id(self):
        return self.identifier


class RecipeNotFound(NotFoundError):
    """Raised when a recipe cannot be found by ID."""

    entity = "Recipe"

    @property
    def recipe_id(self):
        return self.identifier


class CheckpointNotFound(NotFoundError):
    """Raised when a QA checkpoint cannot be found by ID."""

    entity = "Checkpoint"

    @property
    def checkpoint_id(self):
        return self.identifier


class LotNotFound(NotFoundError):
    """Raised when a material lot cannot be found by ID."""

    entity = "Lot"

    @property
    def lot_id(self):
        return self.identifier


class MaterialNotFound(NotFoundError):
    """Raised when a material cannot be found by ID."""

    entity = "Material"


class ProductNotFound(NotFoundError):
    """Raised when a product cannot be found by ID."""

    entity = "Product"


class BatchIngredientNotFound(NotFoundError):
    """Raised when a batch ingredient line cannot be found by ID."""

    entity = "Batch ingredient"


class ReleaseNotFound(NotFoundError):
    """Raised when a batch has no release record yet.

    Args:
        batch_id: Batch whose release was requested
    """

    entity = "Release for batch"

    @property
    def batch_id(self):
        return self.identifier


# ============================================================================
# Validation
# ============================================================================


class ValidationError(ServiceError):
    """Raised when data validation fails.

    Args:
        errors: List of human-readable validation messages
    """

    kind = "validation_failed"

    def __init__(self, errors: list):
        self.errors = list(errors)
        error_msg = "; ".join(self.errors)
        super().__init__(f"Validation failed: {error_msg}")

    def details(self) -> Dict[str, Any]:
        return {"errors": self.errors}


class InvalidRecipe(ValidationError):
    """Raised when a recipe cannot be scaled (non-positive base weight).

    Example:
        >>> raise InvalidRecipe(7, ["Base weight must be greater than 0"])
    """

    def __init__(self, recipe_id: Optional[int], errors: list):
        self.recipe_id = recipe_id
        super().__init__(errors)

    def details(self) -> Dict[str, Any]:
        return {"recipe_id": self.recipe_id, "errors": self.errors}


# ============================================================================
# Preconditions
# ============================================================================


class PreconditionFailed(ServiceError):
    """Raised when a business-rule gate is not met."""

    kind = "precondition_failed"


class IncompleteQA(PreconditionFailed):
    """Raised when a batch is completed with required checkpoints outstanding.

    Args:
        batch_id: Batch being completed
        pending_checkpoints: Codes of required checkpoints not yet passed

    Example:
        >>> raise IncompleteQA(3, ["MIX-TEMP", "DRY-AW"])
        IncompleteQA: Batch 3 has 2 required checkpoints pending: MIX-TEMP, DRY-AW
    """

    def __init__(self, batch_id: int, pending_checkpoints: List[str]):
        self.batch_id = batch_id
        self.pending_checkpoints = list(pending_checkpoints)
        super().__init__(
            f"Batch {batch_id} has {len(self.pending_checkpoints)} required checkpoints "
            f"pending: {', '.join(self.pending_checkpoints)}"
        )

    def details(self) -> Dict[str, Any]:
        return {"batch_id": self.batch_id, "pending_checkpoints": self.pending_checkpoints}


class ReleaseGatesNotMet(PreconditionFailed):
    """Raised when a release is approved while a gate is still failing.

    Args:
        batch_id: Batch whose release was being approved
        failing_gates: Names of the failing gates (e.g. "all_qa_passed", "recalled_lots")
        gates: Full gate evaluation as a dict
    """

    def __init__(self, batch_id: int, failing_gates: List[str], gates: Optional[dict] = None):
        self.batch_id = batch_id
        self.failing_gates = list(failing_gates)
        self.gates = gates or {}
        super().__init__(
            f"Release gates not met for batch {batch_id}: {', '.join(self.failing_gates)}"
        )

    def details(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "failing_gates": self.failing_gates,
            "gates": self.gates,
        }


class InvalidReleaseTransition(PreconditionFailed):
    """Raised when a release status change is not in the transition table."""

    def __init__(self, batch_id: int, current_status: str, target_status: str):
        self.batch_id = batch_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Cannot move release of batch {batch_id} from '{current_status}' "
            f"to '{target_status}'"
        )

    def details(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "current_status": self.current_status,
            "target_status": self.target_status,
        }


class BatchAlreadyCompleted(PreconditionFailed):
    """Raised when completing a batch that is already completed."""

    def __init__(self, batch_id: int):
        self.batch_id = batch_id
        super().__init__(f"Batch {batch_id} is already completed")

    def details(self) -> Dict[str, Any]:
        return {"batch_id": self.batch_id}


class PermissionDenied(PreconditionFailed):
    """Raised when the actor's role may not perform an operation.

    Args:
        actor_id: Actor attempting the operation
        role: The actor's role
        operation: Operation name
    """

    def __init__(self, actor_id: str, role: str, operation: str):
        self.actor_id = actor_id
        self.role = role
        self.operation = operation
        super().__init__(f"Actor '{actor_id}' with role '{role}' may not {operation}")

    def details(self) -> Dict[str, Any]:
        return {"actor_id": self.actor_id, "role": self.role, "operation": self.operation}


# ============================================================================
# Datastore
# ============================================================================


class ConflictingState(ServiceError):
    """Raised when a concurrent write lost a race the database rejected."""

    kind = "conflicting_state"

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Conflicting state: {message}")


class CollaboratorUnavailable(ServiceError):
    """Raised when the database fails; the original error is preserved."""

    kind = "collaborator_unavailable"

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")

    def details(self) -> Dict[str, Any]:
        return {"original_error": repr(self.original_error) if self.original_error else None}
