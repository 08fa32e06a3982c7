from datetime import date
from decimal import Decimal

import pytest

from atlas_classifier.domain.documents import (
    CanonicalFields,
    ClassificationPolicy,
    FieldRequirement,
)
from atlas_classifier.domain.movements import Movement
from atlas_classifier.domain.value_objects import DocType
from atlas_classifier.repositories.sqlite import (
    SQLiteDatabase,
    SQLiteLearningLogRepository,
    SQLiteLearningRuleRepository,
    SQLiteMovementRepository,
)
from atlas_classifier.services.document_classifier import DocumentClassifier
from atlas_classifier.services.duplicate_detector import DuplicateDetector
from atlas_classifier.services.field_extractor import FieldExtractor
from atlas_classifier.services.movement_learning import MovementLearningService

ACCOUNT_A = "cuenta-santander-01"
ACCOUNT_B = "cuenta-bbva-02"


def make_policy(auto_file_enabled: bool = False) -> ClassificationPolicy:
    return ClassificationPolicy(
        auto_file_enabled=auto_file_enabled,
        confidence_thresholds={
            DocType.INVOICE: 0.80,
            DocType.RECEIPT: 0.80,
            DocType.BANK_STATEMENT: 0.75,
            DocType.CONTRACT: 0.70,
            DocType.OTHER: 0.50,
        },
        required_fields={
            DocType.INVOICE: frozenset(
                {
                    FieldRequirement.PROVIDER,
                    FieldRequirement.TOTAL_AMOUNT,
                    FieldRequirement.ISSUE_DATE,
                }
            ),
            DocType.RECEIPT: frozenset(
                {FieldRequirement.TOTAL_AMOUNT, FieldRequirement.CHARGE_DATE}
            ),
        },
        capex_amount_threshold=Decimal("3000.00"),
    )


def make_movement(
    description: str = "ENDESA ESPAÑA SA RECIBO LUZ ENE2024 REF123",
    account_id: str = ACCOUNT_A,
    day: date = date(2024, 1, 15),
    amount: Decimal = Decimal("-78.45"),
    counterparty: str | None = None,
) -> Movement:
    return Movement(
        account_id=account_id,
        date=day,
        description=description,
        amount=amount,
        counterparty=counterparty,
    )


@pytest.fixture
def policy() -> ClassificationPolicy:
    return make_policy()


@pytest.fixture
def auto_file_policy() -> ClassificationPolicy:
    return make_policy(auto_file_enabled=True)


@pytest.fixture
def complete_invoice_fields() -> CanonicalFields:
    return CanonicalFields(
        provider="Endesa Energía S.A.U.",
        tax_id="A81948077",
        invoice_number="PMR401N0012345",
        issue_date=date(2024, 3, 15),
        net_amount=Decimal("100.00"),
        tax_amount=Decimal("21.00"),
        total_amount=Decimal("121.00"),
        field_confidence={
            "provider": 0.95,
            "tax_id": 0.95,
            "invoice_number": 0.95,
            "issue_date": 0.95,
            "net_amount": 0.95,
            "tax_amount": 0.95,
            "total_amount": 0.95,
        },
    )


@pytest.fixture
def extractor() -> FieldExtractor:
    return FieldExtractor()


@pytest.fixture
def classifier() -> DocumentClassifier:
    return DocumentClassifier()


@pytest.fixture
def detector() -> DuplicateDetector:
    return DuplicateDetector()


@pytest.fixture
def db() -> SQLiteDatabase:
    """Create an in-memory SQLite database for testing."""
    database = SQLiteDatabase(":memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def movement_repo(db: SQLiteDatabase) -> SQLiteMovementRepository:
    return SQLiteMovementRepository(db)


@pytest.fixture
def rule_repo(db: SQLiteDatabase) -> SQLiteLearningRuleRepository:
    return SQLiteLearningRuleRepository(db)


@pytest.fixture
def log_repo(db: SQLiteDatabase) -> SQLiteLearningLogRepository:
    return SQLiteLearningLogRepository(db)


@pytest.fixture
def learning_service(
    movement_repo: SQLiteMovementRepository,
    rule_repo: SQLiteLearningRuleRepository,
    log_repo: SQLiteLearningLogRepository,
) -> MovementLearningService:
    return MovementLearningService(movement_repo, rule_repo, log_repo)


@pytest.fixture
def movement_factory():
    """Build unsaved movements; defaults to a January 2024 Endesa bill in account A."""
    return make_movement
