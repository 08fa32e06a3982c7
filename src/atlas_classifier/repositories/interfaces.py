from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date
from uuid import UUID

from atlas_classifier.domain.movements import (
    LearningLogEntry,
    LearningRule,
    Movement,
)
from atlas_classifier.domain.value_objects import ReconciliationStatus


class MovementRepository(ABC):
    """Repository interface for bank movements."""

    @abstractmethod
    def add(self, movement: Movement) -> None:
        """Add a new movement."""
        pass

    @abstractmethod
    def get(self, movement_id: UUID) -> Movement | None:
        """Get movement by ID."""
        pass

    @abstractmethod
    def update(self, movement: Movement) -> None:
        """Update an existing movement."""
        pass

    @abstractmethod
    def delete(self, movement_id: UUID) -> None:
        pass

    @abstractmethod
    def list_all(self) -> Iterable[Movement]:
        pass

    @abstractmethod
    def list_by_account(
        self,
        account_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> Iterable[Movement]:
        """List movements of an account, oldest first."""
        pass

    @abstractmethod
    def list_by_learn_key(
        self,
        learn_key: str,
        account_id: str,
        start_date: date,
        end_date: date,
        status: ReconciliationStatus | None = None,
    ) -> Iterable[Movement]:
        """List movements sharing a learn key inside an account and date range.

        Ordered by date ascending so that a limited backfill processes the
        oldest movements first.
        """
        pass

    @abstractmethod
    def list_without_learn_key(
        self,
        account_id: str,
        start_date: date,
        end_date: date,
    ) -> Iterable[Movement]:
        """List movements that were stored before learn keys were assigned."""
        pass


class LearningRuleRepository(ABC):
    """Repository interface for learning rules (one per learn key)."""

    @abstractmethod
    def add(self, rule: LearningRule) -> None:
        pass

    @abstractmethod
    def get(self, rule_id: UUID) -> LearningRule | None:
        pass

    @abstractmethod
    def get_by_learn_key(self, learn_key: str) -> LearningRule | None:
        pass

    @abstractmethod
    def list_all(self) -> Iterable[LearningRule]:
        """List rules, most recently updated first."""
        pass

    @abstractmethod
    def update(self, rule: LearningRule) -> None:
        pass

    @abstractmethod
    def delete(self, rule_id: UUID) -> None:
        pass


class LearningLogRepository(ABC):
    """Append-only store for learning log entries."""

    @abstractmethod
    def append(self, entry: LearningLogEntry) -> None:
        pass

    @abstractmethod
    def list_all(self, learn_key: str | None = None) -> Iterable[LearningLogEntry]:
        """List entries in insertion order, optionally for a single learn key."""
        pass
