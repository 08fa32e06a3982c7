"""Bank movement, learning rule and learning log domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from atlas_classifier.domain.value_objects import (
    AmountSign,
    LearningAction,
    ReconciliationStatus,
    RuleSource,
    Scope,
)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class Movement:
    """A bank movement as stored by the persistence layer.

    The learning engine writes reconciliation_status, learn_key, category,
    scope and property_id; creation and deletion belong to import flows.
    """

    account_id: str
    date: date
    description: str
    amount: Decimal
    id: UUID = field(default_factory=uuid4)
    counterparty: str | None = None
    reconciliation_status: ReconciliationStatus = ReconciliationStatus.UNMATCHED
    learn_key: str | None = None
    category: str | None = None
    scope: Scope = Scope.PERSONAL
    property_id: str | None = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def amount_sign(self) -> AmountSign:
        return AmountSign.POSITIVE if self.amount >= 0 else AmountSign.NEGATIVE

    @property
    def is_unmatched(self) -> bool:
        return self.reconciliation_status == ReconciliationStatus.UNMATCHED


@dataclass
class LearningRule:
    """Classification learned for every movement sharing a learn key."""

    learn_key: str
    category: str
    scope: Scope
    id: UUID = field(default_factory=uuid4)
    property_id: str | None = None
    source: RuleSource = RuleSource.IMPLICIT
    counterparty_pattern: str = ""
    description_pattern: str = ""
    amount_sign: AmountSign = AmountSign.NEGATIVE
    applied_count: int = 0
    last_applied_at: datetime | None = None
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    def reassign(self, category: str, scope: Scope, property_id: str | None) -> None:
        self.category = category
        self.scope = scope
        self.property_id = property_id
        self.updated_at = _utc_now()

    def record_application(self, count: int = 1) -> None:
        self.applied_count += count
        self.last_applied_at = _utc_now()


@dataclass(frozen=True)
class LearningLogEntry:
    """Append-only audit record of learning activity.

    Carries the learn key and the classification only; descriptions,
    counterparties and account identifiers are never recorded.
    """

    action: LearningAction
    learn_key: str
    category: str
    scope: Scope
    property_id: str | None = None
    affected_count: int | None = None
    id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True)
class ReconciliationPeriod:
    """Inclusive date range that scopes a backfill."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Period end {self.end} precedes start {self.start}")

    @classmethod
    def for_year(cls, year: int) -> ReconciliationPeriod:
        return cls(start=date(year, 1, 1), end=date(year, 12, 31))

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class BackfillResult:
    updated: int
    total: int
    failed: tuple[UUID, ...] = ()

    @property
    def remaining(self) -> int:
        return max(self.total - self.updated - len(self.failed), 0)


@dataclass(frozen=True)
class ManualReconciliationResult:
    applied_to_similar_count: int
    learn_key: str
    rule: LearningRule
    backfill: BackfillResult


@dataclass(frozen=True)
class LearningRulesStats:
    total_rules: int
    total_applications: int
    recent_rules: list[LearningRule]
