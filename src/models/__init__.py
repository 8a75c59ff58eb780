"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .enums import (
    QAStage,
    CheckStatus,
    BatchStatus,
    ReleaseStatus,
    LotStatus,
    DocumentStatus,
    CureType,
    CureStatus,
    UserRole,
)
from .material import Material
from .supplier import Supplier
from .product import Product
from .recipe import Recipe, RecipeIngredient
from .batch import Batch, BatchIngredient
from .qa_checkpoint import QACheckpoint, BatchQACheck
from .material_lot import MaterialLot
from .lot_allocation import LotAllocation
from .batch_release import BatchRelease
from .lot_recall import LotRecall, LotRecallBatch
from .qa_document import QADocumentType, QADocument
from .product_test import ProductTest

__all__ = [
    "Base",
    "BaseModel",
    # Enumerations
    "QAStage",
    "CheckStatus",
    "BatchStatus",
    "ReleaseStatus",
    "LotStatus",
    "DocumentStatus",
    "CureType",
    "CureStatus",
    "UserRole",
    # Catalogue
    "Material",
    "Supplier",
    "Product",
    "Recipe",
    "RecipeIngredient",
    # Production
    "Batch",
    "BatchIngredient",
    "QACheckpoint",
    "BatchQACheck",
    # Traceability
    "MaterialLot",
    "LotAllocation",
    "LotRecall",
    "LotRecallBatch",
    # Release
    "BatchRelease",
    "QADocumentType",
    "QADocument",
    "ProductTest",
]
