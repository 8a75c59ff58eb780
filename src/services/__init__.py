"""Services package - Business logic layer for Batch QA Tracker.

This package contains all service modules that provide business logic
and database operations for the application.

Architecture:
- Services: Stateless functions organized by domain (recipe, batch, QA, lots, release)
- Transactions: Managed via session_scope() context manager; every public
  function also accepts an optional session to join a caller's transaction
- Exceptions: Consistent error handling via the ServiceError hierarchy
- Validation: Input validation before database operations

Service Modules:
- compliance: Pure progress and tolerance arithmetic
- cure_calculator: Pure cure (nitrite) ppm arithmetic
- recipe_service: Recipe authoring and scaling
- batch_service: Batch creation and ingredient measurements
- qa_service: Checkpoint recording, progress and batch completion
- lot_service: Lot receipt, FEFO allocation, recall cascade, traceability
- release_service: Release gates and release decisions

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- identity: Actor value supplied by the caller's identity provider
- logging_utils: Structured service logging
"""

from . import (
    database,
    compliance,
    cure_calculator,
    recipe_service,
    release_service,
    lot_service,
    batch_service,
    qa_service,
)
from .exceptions import (
    ServiceError,
    NotFoundError,
    ValidationError,
    PreconditionFailed,
    ConflictingState,
    CollaboratorUnavailable,
)
from .identity import Actor

__all__ = [
    "database",
    "compliance",
    "cure_calculator",
    "recipe_service",
    "release_service",
    "lot_service",
    "batch_service",
    "qa_service",
    "ServiceError",
    "NotFoundError",
    "ValidationError",
    "PreconditionFailed",
    "ConflictingState",
    "CollaboratorUnavailable",
    "Actor",
]
