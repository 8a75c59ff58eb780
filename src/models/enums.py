"""
Enumerations for batch QA tracking.

Every status column in the schema is restricted to one of these closed
sets; models coerce assignments through them (see base.coerce_enum), so an
unrecognized status string can never be persisted.

- QAStage: Ordered production stages that group checkpoints
- CheckStatus: Outcome of one checkpoint evaluation for one batch
- BatchStatus: Batch lifecycle
- ReleaseStatus: Commercial release decision
- LotStatus: Material lot availability
- DocumentStatus: QA document review state
- CureType: Supported curing salts
- CureStatus: Measured cure concentration against the ppm window
- UserRole: Coarse role tag supplied with every actor
"""

from enum import Enum


class QAStage(str, Enum):
    """
    Production stage a checkpoint belongs to.

    Declaration order is production order; FINAL is also the stage reported
    once every other stage is clear.
    """

    PREPARATION = "preparation"
    MIXING = "mixing"
    MARINATION = "marination"
    DRYING = "drying"
    PACKAGING = "packaging"
    FINAL = "final"


class CheckStatus(str, Enum):
    """
    Status of a batch QA check.

    A checkpoint with no recorded check is implicitly PENDING. Only PASSED
    counts toward stage completion; SKIPPED and CONDITIONAL do not.
    """

    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    CONDITIONAL = "conditional"


class BatchStatus(str, Enum):
    """Batch lifecycle status."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ReleaseStatus(str, Enum):
    """
    Batch release status.

    Values:
        PENDING: Created at batch completion, awaiting a decision
        APPROVED: Released for sale (all gates passed)
        REJECTED: Refused release, reason mandatory
        HOLD: Parked pending investigation, reason mandatory, reversible
        RECALLED: Previously approved batch pulled by a lot recall
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    HOLD = "hold"
    RECALLED = "recalled"


class LotStatus(str, Enum):
    """Material lot status. RECALLED is terminal."""

    AVAILABLE = "available"
    DEPLETED = "depleted"
    RECALLED = "recalled"


class DocumentStatus(str, Enum):
    """QA document review status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class CureType(str, Enum):
    """Supported curing salts."""

    DENKURIT = "denkurit"
    PRAGUE1 = "prague1"


class CureStatus(str, Enum):
    """Measured cure concentration relative to the configured ppm window."""

    LOW = "LOW"
    OK = "OK"
    HIGH = "HIGH"


class UserRole(str, Enum):
    """Role tag supplied by the identity provider."""

    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"
