"""Movement learning service.

Learns classification rules from manual reconciliations of bank movements,
applies them to newly imported movements and backfills them over history.

Reconciliation status only moves forward from UNMATCHED: automatic passes
(import-time application and backfill) touch UNMATCHED movements only, so a
MANUAL_MATCHED movement is never overwritten; a manual reconciliation may
revise an AUTO_MATCHED one.

Backfill is scoped to the source movement's account and reconciliation
period. Import-time application is not: a known rule is applied to any new
movement whatever its account or date.
"""

from collections.abc import Iterable
from dataclasses import replace
from datetime import UTC, datetime
from uuid import UUID

from atlas_classifier.domain.movements import (
    BackfillResult,
    LearningLogEntry,
    LearningRule,
    LearningRulesStats,
    ManualReconciliationResult,
    Movement,
    ReconciliationPeriod,
)
from atlas_classifier.domain.value_objects import (
    LearningAction,
    ReconciliationStatus,
    RuleSource,
    Scope,
)
from atlas_classifier.exceptions import (
    LearningRuleNotFoundError,
    LearningRuleValidationError,
    MovementNotFoundError,
    PersistenceError,
)
from atlas_classifier.logging_config import get_logger
from atlas_classifier.repositories.interfaces import (
    LearningLogRepository,
    LearningRuleRepository,
    MovementRepository,
)
from atlas_classifier.services.learn_key import describe_pattern, learn_key_for

logger = get_logger(__name__)


class MovementLearningService:
    """Rule learning, import-time application and scoped backfill."""

    def __init__(
        self,
        movement_repo: MovementRepository,
        rule_repo: LearningRuleRepository,
        log_repo: LearningLogRepository,
        default_backfill_limit: int | None = None,
    ) -> None:
        """Initialize MovementLearningService.

        Args:
            movement_repo: Repository for bank movements.
            rule_repo: Repository for learning rules.
            log_repo: Append-only learning log.
            default_backfill_limit: Limit used when a backfill call passes none.
        """
        self._movement_repo = movement_repo
        self._rule_repo = rule_repo
        self._log_repo = log_repo
        self._default_backfill_limit = default_backfill_limit

    def perform_manual_reconciliation(
        self,
        movement_id: UUID,
        category: str,
        scope: Scope,
        property_id: str | None = None,
        period: ReconciliationPeriod | None = None,
        limit: int | None = None,
    ) -> ManualReconciliationResult:
        """Reconcile a movement by hand and learn from it.

        Upserts the learning rule for the movement's learn key, marks the
        movement MANUAL_MATCHED and backfills the rule over UNMATCHED
        movements of the same account inside the period (the movement's
        calendar year when no period is given).

        Raises:
            LearningRuleValidationError: If category is empty, or scope is
                PROPERTY without a property_id.
            MovementNotFoundError: If the movement does not exist.
            PersistenceError: If the rule upsert or the movement update fails.
                A failed movement update undoes the rule upsert first.
        """
        category, scope = self._validate_classification(category, scope, property_id)

        movement = self._movement_repo.get(movement_id)
        if movement is None:
            raise MovementNotFoundError(movement_id)

        learn_key = learn_key_for(movement)
        existing = self._rule_repo.get_by_learn_key(learn_key)

        if existing is None:
            identity, concept = describe_pattern(movement.counterparty, movement.description)
            rule = LearningRule(
                learn_key=learn_key,
                category=category,
                scope=scope,
                property_id=property_id,
                source=RuleSource.IMPLICIT,
                counterparty_pattern=identity,
                description_pattern=concept,
                amount_sign=movement.amount_sign,
            )
            previous = None
            self._rule_repo.add(rule)
            action = LearningAction.CREATE_RULE
        else:
            previous = replace(existing)
            rule = existing
            rule.reassign(category, scope, property_id)
            self._rule_repo.update(rule)
            action = LearningAction.UPDATE_RULE

        movement.learn_key = learn_key
        movement.reconciliation_status = ReconciliationStatus.MANUAL_MATCHED
        self._assign_classification(movement, rule)
        try:
            self._movement_repo.update(movement)
        except PersistenceError:
            self._undo_rule_upsert(rule, previous)
            raise

        self._log_repo.append(
            LearningLogEntry(
                action=action,
                learn_key=learn_key,
                category=rule.category,
                scope=rule.scope,
                property_id=rule.property_id,
            )
        )
        logger.info(
            "learning_rule_created"
            if action == LearningAction.CREATE_RULE
            else "learning_rule_updated",
            learn_key=learn_key,
            movement_id=str(movement.id),
            category=rule.category,
            scope=rule.scope.value,
        )

        reconciliation_period = period or ReconciliationPeriod.for_year(movement.date.year)
        backfill = self._backfill_rule(
            rule, movement.account_id, reconciliation_period, limit
        )
        return ManualReconciliationResult(
            applied_to_similar_count=backfill.updated,
            learn_key=learn_key,
            rule=rule,
            backfill=backfill,
        )

    def apply_all_rules_on_import(self, movements: Iterable[Movement]) -> list[Movement]:
        """Stamp learn keys and apply known rules to newly imported movements.

        Returns new Movement objects; the inputs are left untouched. Only
        UNMATCHED movements are classified, so running this twice on the
        same list changes nothing and logs nothing the second time.
        """
        rules: dict[str, LearningRule | None] = {}
        applied_counts: dict[str, int] = {}
        applied_rules: dict[str, LearningRule] = {}
        result: list[Movement] = []

        for movement in movements:
            learn_key = learn_key_for(movement)
            stamped = replace(movement, learn_key=learn_key)

            if stamped.is_unmatched:
                if learn_key not in rules:
                    rules[learn_key] = self._rule_repo.get_by_learn_key(learn_key)
                rule = rules[learn_key]
                if rule is not None:
                    stamped.reconciliation_status = ReconciliationStatus.AUTO_MATCHED
                    self._assign_classification(stamped, rule)
                    applied_counts[learn_key] = applied_counts.get(learn_key, 0) + 1
                    applied_rules[learn_key] = rule

            result.append(stamped)

        for learn_key, count in applied_counts.items():
            rule = applied_rules[learn_key]
            self._log_repo.append(
                LearningLogEntry(
                    action=LearningAction.APPLY_RULE,
                    learn_key=learn_key,
                    category=rule.category,
                    scope=rule.scope,
                    property_id=rule.property_id,
                    affected_count=count,
                )
            )
            rule.record_application(count)
            self._rule_repo.update(rule)

        logger.info(
            "rules_applied_on_import",
            movements=len(result),
            matched=sum(applied_counts.values()),
            rules_applied=len(applied_counts),
        )
        return result

    def import_movements(self, movements: Iterable[Movement]) -> list[Movement]:
        """Apply known rules to new movements, then persist them."""
        imported = self.apply_all_rules_on_import(movements)
        for movement in imported:
            self._movement_repo.add(movement)
        logger.info("movements_imported", count=len(imported))
        return imported

    def backfill(
        self,
        learn_key: str,
        account_id: str,
        period: ReconciliationPeriod,
        limit: int | None = None,
    ) -> BackfillResult:
        """Apply an existing rule to UNMATCHED movements of one account and period.

        Movements are processed oldest first and at most ``limit`` of them are
        updated; ``total`` reports every match so callers can page through
        the remainder. Each row is written on its own: a failing row is
        reported in ``failed`` and does not undo the rows before it.

        Raises:
            LearningRuleNotFoundError: If no rule exists for learn_key.
        """
        rule = self._rule_repo.get_by_learn_key(learn_key)
        if rule is None:
            raise LearningRuleNotFoundError(learn_key)
        return self._backfill_rule(rule, account_id, period, limit)

    def create_learning_rule(
        self,
        learn_key: str,
        category: str,
        scope: Scope,
        property_id: str | None = None,
    ) -> LearningRule:
        """Create a rule directly, without a source movement.

        Raises:
            LearningRuleValidationError: On an empty learn key or category, or
                PROPERTY scope without a property_id.
            DuplicateLearnKeyError: If a rule already exists for learn_key.
        """
        if not learn_key or not learn_key.strip():
            raise LearningRuleValidationError("Clave de aprendizaje vacía")
        category, scope = self._validate_classification(category, scope, property_id)

        rule = LearningRule(
            learn_key=learn_key.strip(),
            category=category,
            scope=scope,
            property_id=property_id,
            source=RuleSource.MANUAL,
        )
        self._rule_repo.add(rule)
        self._log_repo.append(
            LearningLogEntry(
                action=LearningAction.CREATE_RULE,
                learn_key=rule.learn_key,
                category=rule.category,
                scope=rule.scope,
                property_id=rule.property_id,
            )
        )
        logger.info(
            "learning_rule_created",
            learn_key=rule.learn_key,
            category=rule.category,
            scope=rule.scope.value,
            source=rule.source.value,
        )
        return rule

    def get_learning_logs(self, learn_key: str | None = None) -> list[LearningLogEntry]:
        return list(self._log_repo.list_all(learn_key))

    def get_rules_stats(self, recent: int = 10) -> LearningRulesStats:
        rules = list(self._rule_repo.list_all())
        return LearningRulesStats(
            total_rules=len(rules),
            total_applications=sum(rule.applied_count for rule in rules),
            recent_rules=rules[:recent],
        )

    def _backfill_rule(
        self,
        rule: LearningRule,
        account_id: str,
        period: ReconciliationPeriod,
        limit: int | None,
    ) -> BackfillResult:
        if limit is None:
            limit = self._default_backfill_limit
        if limit is not None and limit < 0:
            raise ValueError(f"Backfill limit must be non-negative, got {limit}")

        self._stamp_missing_learn_keys(account_id, period)

        candidates = list(
            self._movement_repo.list_by_learn_key(
                rule.learn_key,
                account_id,
                period.start,
                period.end,
                status=ReconciliationStatus.UNMATCHED,
            )
        )
        selected = candidates if limit is None else candidates[:limit]

        updated = 0
        failed: list[UUID] = []
        for movement in selected:
            movement.reconciliation_status = ReconciliationStatus.AUTO_MATCHED
            self._assign_classification(movement, rule)
            try:
                self._movement_repo.update(movement)
            except PersistenceError as e:
                failed.append(movement.id)
                logger.warning(
                    "backfill_row_failed",
                    learn_key=rule.learn_key,
                    movement_id=str(movement.id),
                    error=e.message,
                )
                continue
            updated += 1

        if updated:
            self._log_repo.append(
                LearningLogEntry(
                    action=LearningAction.BACKFILL,
                    learn_key=rule.learn_key,
                    category=rule.category,
                    scope=rule.scope,
                    property_id=rule.property_id,
                    affected_count=updated,
                )
            )
            rule.record_application(updated)
            self._rule_repo.update(rule)

        result = BackfillResult(updated=updated, total=len(candidates), failed=tuple(failed))
        logger.info(
            "backfill_completed",
            learn_key=rule.learn_key,
            period_start=period.start.isoformat(),
            period_end=period.end.isoformat(),
            updated=result.updated,
            total=result.total,
            failed=len(result.failed),
        )
        return result

    def _stamp_missing_learn_keys(
        self, account_id: str, period: ReconciliationPeriod
    ) -> None:
        """Give a learn key to movements stored before keys were assigned."""
        unkeyed = list(
            self._movement_repo.list_without_learn_key(account_id, period.start, period.end)
        )
        for movement in unkeyed:
            movement.learn_key = learn_key_for(movement)
            try:
                self._movement_repo.update(movement)
            except PersistenceError as e:
                logger.warning(
                    "learn_key_stamp_failed",
                    movement_id=str(movement.id),
                    error=e.message,
                )
        if unkeyed:
            logger.debug("learn_keys_stamped", count=len(unkeyed))

    def _undo_rule_upsert(
        self, rule: LearningRule, previous: LearningRule | None
    ) -> None:
        if previous is None:
            self._rule_repo.delete(rule.id)
        else:
            self._rule_repo.update(previous)
        logger.warning("learning_rule_upsert_reverted", learn_key=rule.learn_key)

    @staticmethod
    def _assign_classification(movement: Movement, rule: LearningRule) -> None:
        movement.category = rule.category
        movement.scope = rule.scope
        movement.property_id = rule.property_id
        movement.updated_at = datetime.now(UTC)

    @staticmethod
    def _validate_classification(
        category: str, scope: Scope | str, property_id: str | None
    ) -> tuple[str, Scope]:
        if not category or not category.strip():
            raise LearningRuleValidationError("Categoría vacía")
        try:
            scope = Scope(scope)
        except ValueError as e:
            raise LearningRuleValidationError(f"Ámbito desconocido: {scope}") from e
        if scope == Scope.PROPERTY and not property_id:
            raise LearningRuleValidationError(
                "El ámbito de propiedad requiere un inmueble"
            )
        return category.strip(), scope
