"""
BatchRelease model for the commercial release decision of a batch.

At most one release exists per batch. It is created when the batch is
completed (status pending, gates evaluated) and moves through the
transitions enforced by release_service.
"""

from sqlalchemy import (
    Column,
    String,
    Integer,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship, validates

from .base import BaseModel, coerce_enum
from .enums import ReleaseStatus


class BatchRelease(BaseModel):
    """
    BatchRelease model.

    Attributes:
        batch_id: Batch being released (unique)
        release_number: Release identifier, REL-<batch_code>
        release_status: pending | approved | rejected | hold | recalled
        all_qa_passed: Every active required checkpoint passed
        all_tests_passed: Every recorded product test passed (or none recorded)
        all_docs_complete: Every release-required document type has an approved document
        reviewed_by / reviewed_at: Last reviewer decision
        approved_by / approved_at: Approval audit
        rejection_reason / hold_reason / recall_reason: Reasons per decision
        notes: Optional reviewer notes
    """

    __tablename__ = "batch_releases"

    batch_id = Column(Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False)
    release_number = Column(String(60), nullable=False, unique=True)
    release_status = Column(String(20), nullable=False, default=ReleaseStatus.PENDING.value)

    all_qa_passed = Column(Boolean, nullable=False, default=False)
    all_tests_passed = Column(Boolean, nullable=False, default=False)
    all_docs_complete = Column(Boolean, nullable=False, default=False)

    reviewed_by = Column(String(100), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime, nullable=True)

    rejection_reason = Column(Text, nullable=True)
    hold_reason = Column(Text, nullable=True)
    recall_reason = Column(Text, nullable=True)
    recalled_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    batch = relationship("Batch", back_populates="release")

    __table_args__ = (
        UniqueConstraint("batch_id", name="uq_batch_release_batch"),
        Index("idx_batch_release_status", "release_status"),
    )

    @validates("release_status")
    def _validate_release_status(self, key, value):
        return coerce_enum(ReleaseStatus, value, key)

    def __repr__(self) -> str:
        """String representation of release."""
        return (
            f"BatchRelease(batch_id={self.batch_id}, "
            f"release_number='{self.release_number}', status='{self.release_status}')"
        )
