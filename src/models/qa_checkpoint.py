"""
QA checkpoint models.

This module contains:
- QACheckpoint: Configured inspection point belonging to one stage
- BatchQACheck: The recorded evaluation of one checkpoint for one batch

Checks are unique per (batch, checkpoint): recording again updates the
existing row. A checkpoint without a check row is pending.
"""

from sqlalchemy import (
    Column,
    String,
    Float,
    Integer,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, validates

from .base import BaseModel, coerce_enum
from .enums import CheckStatus, QAStage
from src.utils.datetime_utils import utc_now


class QACheckpoint(BaseModel):
    """
    QA checkpoint configuration.

    Attributes:
        code: Stable checkpoint code (unique), e.g. "MIX-TEMP"
        name: Display name
        description: Optional instructions for the operator
        stage: Stage the checkpoint belongs to
        required: Whether the checkpoint gates stage completion
        display_order: Order within the stage
        active: Inactive checkpoints are ignored by progress, their checks kept
    """

    __tablename__ = "qa_checkpoints"

    code = Column(String(50), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    stage = Column(String(20), nullable=False)
    required = Column(Boolean, nullable=False, default=True)
    display_order = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)

    checks = relationship("BatchQACheck", back_populates="checkpoint")

    __table_args__ = (
        Index("idx_qa_checkpoint_stage", "stage", "display_order"),
        Index("idx_qa_checkpoint_active", "active"),
    )

    @validates("stage")
    def _validate_stage(self, key, value):
        return coerce_enum(QAStage, value, key)

    def __repr__(self) -> str:
        """String representation of checkpoint."""
        return f"QACheckpoint(id={self.id}, code='{self.code}', stage='{self.stage}')"


class BatchQACheck(BaseModel):
    """
    Recorded evaluation of a checkpoint for a batch.

    Attributes:
        batch_id: Batch evaluated
        checkpoint_id: Checkpoint evaluated
        status: pending | passed | failed | skipped | conditional
        temperature_c / humidity_percent / ph_level / water_activity: Optional measurements
        notes: Free-text notes
        corrective_action: Action taken after a failed or conditional check
        recheck_required: Operator flagged the checkpoint for re-evaluation
        checked_by: Actor id of the latest evaluation
        checked_at: Timestamp of the latest evaluation
    """

    __tablename__ = "batch_qa_checks"

    batch_id = Column(Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False)
    checkpoint_id = Column(
        Integer, ForeignKey("qa_checkpoints.id", ondelete="RESTRICT"), nullable=False
    )

    status = Column(String(20), nullable=False, default=CheckStatus.PENDING.value)

    temperature_c = Column(Float, nullable=True)
    humidity_percent = Column(Float, nullable=True)
    ph_level = Column(Float, nullable=True)
    water_activity = Column(Float, nullable=True)

    notes = Column(Text, nullable=True)
    corrective_action = Column(Text, nullable=True)
    recheck_required = Column(Boolean, nullable=False, default=False)

    checked_by = Column(String(100), nullable=True)
    checked_at = Column(DateTime, nullable=False, default=utc_now)

    batch = relationship("Batch", back_populates="qa_checks")
    checkpoint = relationship("QACheckpoint", back_populates="checks", lazy="joined")

    __table_args__ = (
        UniqueConstraint("batch_id", "checkpoint_id", name="uq_batch_qa_check_batch_checkpoint"),
        Index("idx_batch_qa_check_batch", "batch_id"),
    )

    @validates("status")
    def _validate_status(self, key, value):
        return coerce_enum(CheckStatus, value, key)

    def __repr__(self) -> str:
        """String representation of QA check."""
        return (
            f"BatchQACheck(batch_id={self.batch_id}, "
            f"checkpoint_id={self.checkpoint_id}, status='{self.status}')"
        )
