"""Pytest configuration and fixtures for service layer tests."""

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from src.models.base import Base
from src.services.identity import Actor


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Drops all tables after the test completes
    """
    # Registers every model with Base
    import src.models  # noqa: F401

    # Create in-memory SQLite database for testing
    engine = create_engine("sqlite:///:memory:", echo=False)

    # Create all tables
    Base.metadata.create_all(engine)

    # Create session factory
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Monkey-patch the global session factory for tests
    import src.services.database as db_module

    original_get_session = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session

    # Provide database to test
    yield Session

    # Cleanup
    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()

    # Restore original session factory
    db_module.get_session_factory = original_get_session


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Isolate every test from BATCH_QA_* variables and the config singleton."""
    from src.utils.config import reset_config

    for name in (
        "BATCH_QA_ENV",
        "BATCH_QA_DATABASE_URL",
        "BATCH_QA_LOG_LEVEL",
        "BATCH_QA_DEFAULT_TOLERANCE",
        "BATCH_QA_CURE_PPM_MIN",
        "BATCH_QA_CURE_PPM_TARGET",
        "BATCH_QA_CURE_PPM_MAX",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


# ============================================================================
# Actors
# ============================================================================


@pytest.fixture
def operator():
    """Shop-floor operator (role user)."""
    return Actor("op-1", "user")


@pytest.fixture
def manager():
    """Release decision maker."""
    return Actor("mgr-1", "manager")


# ============================================================================
# Catalogue
# ============================================================================


@pytest.fixture
def materials(test_db):
    """Beef, salt and curing salt materials plus one supplier."""
    from src.models import Material, Supplier

    session = test_db()
    beef = Material(name="Beef Silverside", material_code="BEEF", unit="g")
    salt = Material(name="Sea Salt", material_code="SALT", unit="g")
    cure = Material(name="Denkurit", material_code="CURE", unit="g")
    supplier = Supplier(name="Highland Meats", code="HLM", approved=True)
    session.add_all([beef, salt, cure, supplier])
    session.commit()

    class MaterialData:
        def __init__(self):
            self.beef = beef
            self.salt = salt
            self.cure = cure
            self.supplier = supplier

    return MaterialData()


@pytest.fixture
def sample_recipe(test_db, materials):
    """Recipe with base weight 10 kg: 10000 g beef, 500 g salt, 25 g cure."""
    from src.services import recipe_service

    return recipe_service.create_recipe(
        {
            "name": "Classic Biltong",
            "base_weight": 10.0,
            "base_weight_unit": "kg",
            "target_yield": 5.0,
            "ingredients": [
                {"material_id": materials.beef.id, "quantity": 10000, "unit": "g"},
                {
                    "material_id": materials.salt.id,
                    "quantity": 500,
                    "unit": "g",
                    "tolerance_percentage": 5,
                    "is_critical": True,
                },
                {
                    "material_id": materials.cure.id,
                    "quantity": 25,
                    "unit": "g",
                    "tolerance_percentage": 2,
                    "is_critical": True,
                    "is_cure": True,
                    "cure_type": "denkurit",
                },
            ],
        }
    )


# ============================================================================
# QA checkpoints
# ============================================================================


@pytest.fixture
def checkpoints(test_db):
    """Two required checkpoints in each of preparation, mixing and drying,
    plus one optional mixing checkpoint.

    Returned as a dict keyed by checkpoint code.
    """
    from src.models import QACheckpoint

    session = test_db()
    rows = [
        ("PREP-SANITIZE", "preparation", True, 1),
        ("PREP-TEMP", "preparation", True, 2),
        ("MIX-WEIGH", "mixing", True, 1),
        ("MIX-PH", "mixing", True, 2),
        ("MIX-PHOTO", "mixing", False, 3),
        ("DRY-AW", "drying", True, 1),
        ("DRY-WEIGHT", "drying", True, 2),
    ]
    created = {}
    for code, stage, required, order in rows:
        checkpoint = QACheckpoint(
            code=code,
            name=code.replace("-", " ").title(),
            stage=stage,
            required=required,
            display_order=order,
        )
        session.add(checkpoint)
        created[code] = checkpoint
    session.commit()
    return created


# ============================================================================
# Batches and lots
# ============================================================================


@pytest.fixture
def sample_batch(test_db, sample_recipe, operator):
    """Batch of the sample recipe at 20 kg input, created without lot allocation."""
    from src.services import batch_service

    return batch_service.create_batch(
        sample_recipe.id, 20.0, actor=operator, batch_code="B20250301-001", auto_allocate=False
    )


@pytest.fixture
def add_lot(test_db):
    """Factory inserting an available lot directly."""
    from src.models import MaterialLot

    def _add(material, lot_number, quantity, expiry, received=date(2023, 12, 1), supplier=None):
        session = test_db()
        lot = MaterialLot(
            lot_number=lot_number,
            material_id=material.id,
            supplier_id=supplier.id if supplier is not None else None,
            received_date=received,
            expiry_date=expiry,
            original_quantity=quantity,
            current_balance=quantity,
            unit="g",
            status="available",
        )
        session.add(lot)
        session.commit()
        return lot

    return _add


@pytest.fixture
def pass_required(checkpoints, operator):
    """Callable recording a passed check for every required checkpoint of a batch."""
    from src.services import qa_service

    def _pass(batch_id):
        for checkpoint in checkpoints.values():
            if checkpoint.required:
                qa_service.record_check(batch_id, checkpoint.id, "passed", actor=operator)

    return _pass
