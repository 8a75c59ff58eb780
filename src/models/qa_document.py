"""
QA document models read by the release document gate.

Document files live in external storage; only the review status of each
document is tracked here.
"""

from sqlalchemy import (
    Column,
    String,
    Integer,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship, validates

from .base import BaseModel, coerce_enum
from .enums import DocumentStatus


class QADocumentType(BaseModel):
    """
    QA document type.

    Attributes:
        code: Stable type code (unique), e.g. "COA"
        name: Display name
        required_for_release: Release needs an approved document of this type
        active: Inactive types are ignored by the gate
    """

    __tablename__ = "qa_document_types"

    code = Column(String(50), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    required_for_release = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)


class QADocument(BaseModel):
    """
    QA document attached to a batch.

    Attributes:
        batch_id: Batch the document belongs to
        document_type_id: Document type
        document_number: Reference number
        file_url: Location in external storage
        status: pending | approved | rejected | expired
        approved_by / approved_at: Approval audit
    """

    __tablename__ = "qa_documents"

    batch_id = Column(Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False)
    document_type_id = Column(
        Integer, ForeignKey("qa_document_types.id", ondelete="RESTRICT"), nullable=False
    )
    document_number = Column(String(100), nullable=False)
    file_url = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default=DocumentStatus.PENDING.value)
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime, nullable=True)

    document_type = relationship("QADocumentType")

    __table_args__ = (Index("idx_qa_document_batch", "batch_id", "document_type_id"),)

    @validates("status")
    def _validate_status(self, key, value):
        return coerce_enum(DocumentStatus, value, key)
