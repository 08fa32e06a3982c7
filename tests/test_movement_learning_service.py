"""Tests for MovementLearningService."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from atlas_classifier.domain.movements import LearningRule, Movement, ReconciliationPeriod
from atlas_classifier.domain.value_objects import (
    LearningAction,
    ReconciliationStatus,
    RuleSource,
    Scope,
)
from atlas_classifier.exceptions import (
    DuplicateLearnKeyError,
    LearningRuleNotFoundError,
    LearningRuleValidationError,
    MovementNotFoundError,
    PersistenceError,
)
from atlas_classifier.repositories.sqlite import (
    SQLiteDatabase,
    SQLiteLearningLogRepository,
    SQLiteLearningRuleRepository,
    SQLiteMovementRepository,
)
from atlas_classifier.services.learn_key import learn_key_for
from atlas_classifier.services.movement_learning import MovementLearningService

ACCOUNT_A = "cuenta-santander-01"
ACCOUNT_B = "cuenta-bbva-02"

ENDESA_JAN = "ENDESA ESPAÑA SA RECIBO LUZ ENE2024 REF123"
ENDESA_FEB = "ENDESA ESPAÑA SA RECIBO ELECTRICIDAD FEB2024 REF456"
ENDESA_MAR = "ENDESA ESPAÑA SA RECIBO LUZ MAR2024 REF789"


class FlakyMovementRepository(SQLiteMovementRepository):
    """Fails updates that would move selected movements into a given status."""

    def __init__(self, db: SQLiteDatabase) -> None:
        super().__init__(db)
        self.fail_ids: set = set()
        self.fail_status: ReconciliationStatus | None = None

    def update(self, movement: Movement) -> None:
        if movement.id in self.fail_ids and movement.reconciliation_status == self.fail_status:
            raise PersistenceError("update_movement", "simulated timeout")
        super().update(movement)


class FailingRuleCounterRepository(SQLiteLearningRuleRepository):
    """Fails every rule update, as a lost connection would after the rows are written."""

    def update(self, rule: LearningRule) -> None:
        raise PersistenceError("update_rule", "connection lost")


@pytest.fixture
def flaky_repo(db: SQLiteDatabase) -> FlakyMovementRepository:
    return FlakyMovementRepository(db)


@pytest.fixture
def flaky_service(
    flaky_repo: FlakyMovementRepository,
    rule_repo: SQLiteLearningRuleRepository,
    log_repo: SQLiteLearningLogRepository,
) -> MovementLearningService:
    return MovementLearningService(flaky_repo, rule_repo, log_repo)


def _store(repo: SQLiteMovementRepository, *movements: Movement) -> None:
    for movement in movements:
        repo.add(movement)


class TestManualReconciliation:
    def test_creates_rule_and_marks_movement(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        rule_repo: SQLiteLearningRuleRepository,
        log_repo: SQLiteLearningLogRepository,
        movement_factory,
    ):
        source = movement_factory(description=ENDESA_JAN)
        _store(movement_repo, source)

        result = learning_service.perform_manual_reconciliation(
            source.id, "Suministros", Scope.PERSONAL
        )

        rule = rule_repo.get_by_learn_key(result.learn_key)
        assert rule is not None
        assert rule.category == "Suministros"
        assert rule.scope == Scope.PERSONAL
        assert rule.source == RuleSource.IMPLICIT
        assert rule.counterparty_pattern == "ENDESA ESPANA"
        assert rule.description_pattern == "RECIBO"

        stored = movement_repo.get(source.id)
        assert stored.reconciliation_status == ReconciliationStatus.MANUAL_MATCHED
        assert stored.category == "Suministros"
        assert stored.learn_key == result.learn_key
        assert result.applied_to_similar_count == 0

        actions = [entry.action for entry in log_repo.list_all()]
        assert actions == [LearningAction.CREATE_RULE]

    def test_property_scope_is_stored(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        movement_factory,
    ):
        source = movement_factory(description="COMUNIDAD PROPIETARIOS CUOTA ENE2024")
        _store(movement_repo, source)

        result = learning_service.perform_manual_reconciliation(
            source.id, "Comunidad", Scope.PROPERTY, property_id="piso-centro"
        )

        assert result.rule.scope == Scope.PROPERTY
        assert result.rule.property_id == "piso-centro"
        assert movement_repo.get(source.id).property_id == "piso-centro"

    @pytest.mark.parametrize(
        "category,scope,property_id",
        [
            ("", Scope.PERSONAL, None),
            ("   ", Scope.PERSONAL, None),
            ("Comunidad", Scope.PROPERTY, None),
            ("Comunidad", "unknown", None),
        ],
    )
    def test_invalid_arguments_raise_and_write_nothing(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        rule_repo: SQLiteLearningRuleRepository,
        log_repo: SQLiteLearningLogRepository,
        movement_factory,
        category,
        scope,
        property_id,
    ):
        source = movement_factory()
        _store(movement_repo, source)

        with pytest.raises(LearningRuleValidationError) as exc_info:
            learning_service.perform_manual_reconciliation(
                source.id, category, scope, property_id=property_id
            )

        assert str(exc_info.value) == "No se pudo crear la regla de aprendizaje"
        assert list(rule_repo.list_all()) == []
        assert list(log_repo.list_all()) == []
        assert movement_repo.get(source.id).is_unmatched

    def test_missing_movement_raises(self, learning_service: MovementLearningService):
        with pytest.raises(MovementNotFoundError):
            learning_service.perform_manual_reconciliation(
                uuid4(), "Suministros", Scope.PERSONAL
            )

    def test_second_reconciliation_updates_the_rule(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        rule_repo: SQLiteLearningRuleRepository,
        log_repo: SQLiteLearningLogRepository,
        movement_factory,
    ):
        first = movement_factory(description=ENDESA_JAN)
        second = movement_factory(description=ENDESA_FEB, day=date(2024, 2, 15))
        _store(movement_repo, first, second)

        learning_service.perform_manual_reconciliation(first.id, "Suministros", Scope.PERSONAL)
        result = learning_service.perform_manual_reconciliation(
            second.id, "Luz piso", Scope.PROPERTY, property_id="piso-centro"
        )

        rules = list(rule_repo.list_all())
        assert len(rules) == 1
        assert rules[0].category == "Luz piso"
        assert rules[0].property_id == "piso-centro"
        assert result.rule.id == rules[0].id
        assert LearningAction.UPDATE_RULE in [e.action for e in log_repo.list_all()]

    def test_auto_matched_movement_can_be_revised_manually(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        movement_factory,
    ):
        first = movement_factory(description=ENDESA_JAN)
        second = movement_factory(description=ENDESA_FEB, day=date(2024, 2, 15))
        _store(movement_repo, first, second)
        learning_service.perform_manual_reconciliation(first.id, "Suministros", Scope.PERSONAL)
        assert (
            movement_repo.get(second.id).reconciliation_status
            == ReconciliationStatus.AUTO_MATCHED
        )

        learning_service.perform_manual_reconciliation(second.id, "Hogar", Scope.PERSONAL)

        revised = movement_repo.get(second.id)
        assert revised.reconciliation_status == ReconciliationStatus.MANUAL_MATCHED
        assert revised.category == "Hogar"


class TestBackfill:
    def test_backfills_same_account_and_year(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        log_repo: SQLiteLearningLogRepository,
        movement_factory,
    ):
        source = movement_factory(description=ENDESA_JAN)
        february = movement_factory(description=ENDESA_FEB, day=date(2024, 2, 14), amount=Decimal("-91.20"))
        march = movement_factory(description=ENDESA_MAR, day=date(2024, 3, 14), amount=Decimal("-66.00"))
        unrelated = movement_factory(description="MERCADONA COMPRA TARJETA 4471")
        _store(movement_repo, source, february, march, unrelated)

        result = learning_service.perform_manual_reconciliation(
            source.id, "Suministros", Scope.PERSONAL
        )

        assert result.applied_to_similar_count == 2
        assert result.backfill.total == 2
        for movement_id in (february.id, march.id):
            stored = movement_repo.get(movement_id)
            assert stored.reconciliation_status == ReconciliationStatus.AUTO_MATCHED
            assert stored.category == "Suministros"
        assert movement_repo.get(unrelated.id).is_unmatched

        backfills = [e for e in log_repo.list_all() if e.action == LearningAction.BACKFILL]
        assert len(backfills) == 1
        assert backfills[0].affected_count == 2
        assert result.rule.applied_count == 2

    def test_other_account_is_never_touched(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        movement_factory,
    ):
        source = movement_factory(description=ENDESA_JAN, account_id=ACCOUNT_A)
        other_account = movement_factory(
            description=ENDESA_FEB, account_id=ACCOUNT_B, day=date(2024, 2, 15)
        )
        _store(movement_repo, source, other_account)

        learning_service.perform_manual_reconciliation(
            source.id,
            "Suministros",
            Scope.PERSONAL,
            period=ReconciliationPeriod(date(2020, 1, 1), date(2030, 12, 31)),
        )

        assert movement_repo.get(other_account.id).is_unmatched

    def test_other_year_is_untouched_by_default(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        movement_factory,
    ):
        source = movement_factory(description=ENDESA_JAN, day=date(2024, 1, 15))
        next_year = movement_factory(description=ENDESA_FEB, day=date(2025, 2, 15))
        _store(movement_repo, source, next_year)

        result = learning_service.perform_manual_reconciliation(
            source.id, "Suministros", Scope.PERSONAL
        )

        assert result.applied_to_similar_count == 0
        assert movement_repo.get(next_year.id).is_unmatched

    def test_period_argument_can_span_years(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        movement_factory,
    ):
        source = movement_factory(description=ENDESA_JAN, day=date(2024, 1, 15))
        next_year = movement_factory(description=ENDESA_FEB, day=date(2025, 2, 15))
        _store(movement_repo, source, next_year)

        result = learning_service.perform_manual_reconciliation(
            source.id,
            "Suministros",
            Scope.PERSONAL,
            period=ReconciliationPeriod(date(2024, 1, 1), date(2025, 12, 31)),
        )

        assert result.applied_to_similar_count == 1
        assert (
            movement_repo.get(next_year.id).reconciliation_status
            == ReconciliationStatus.AUTO_MATCHED
        )

    def test_manual_matches_are_never_overwritten(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        movement_factory,
    ):
        source = movement_factory(description=ENDESA_JAN)
        reviewed = movement_factory(description=ENDESA_FEB, day=date(2024, 2, 15))
        reviewed.reconciliation_status = ReconciliationStatus.MANUAL_MATCHED
        reviewed.category = "Reclamación"
        _store(movement_repo, source, reviewed)

        learning_service.perform_manual_reconciliation(source.id, "Suministros", Scope.PERSONAL)

        stored = movement_repo.get(reviewed.id)
        assert stored.reconciliation_status == ReconciliationStatus.MANUAL_MATCHED
        assert stored.category == "Reclamación"

    def test_limit_updates_oldest_first_and_reports_total(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        movement_factory,
    ):
        source = movement_factory(description=ENDESA_JAN, day=date(2024, 1, 15))
        later = [
            movement_factory(description=ENDESA_FEB, day=date(2024, month, 15))
            for month in (5, 3, 4)
        ]
        _store(movement_repo, source, *later)

        result = learning_service.perform_manual_reconciliation(
            source.id, "Suministros", Scope.PERSONAL, limit=2
        )

        assert result.backfill.updated == 2
        assert result.backfill.total == 3
        assert result.backfill.remaining == 1
        statuses = {m.date.month: m.reconciliation_status for m in movement_repo.list_all()}
        assert statuses[3] == ReconciliationStatus.AUTO_MATCHED
        assert statuses[4] == ReconciliationStatus.AUTO_MATCHED
        assert statuses[5] == ReconciliationStatus.UNMATCHED

        remainder = learning_service.backfill(
            result.learn_key, ACCOUNT_A, ReconciliationPeriod.for_year(2024), limit=2
        )

        assert remainder.updated == 1
        assert remainder.total == 1

    def test_default_limit_from_constructor(
        self,
        movement_repo: SQLiteMovementRepository,
        rule_repo: SQLiteLearningRuleRepository,
        log_repo: SQLiteLearningLogRepository,
        movement_factory,
    ):
        service = MovementLearningService(
            movement_repo, rule_repo, log_repo, default_backfill_limit=1
        )
        source = movement_factory(description=ENDESA_JAN)
        others = [
            movement_factory(description=ENDESA_FEB, day=date(2024, month, 1))
            for month in (2, 3)
        ]
        _store(movement_repo, source, *others)

        result = service.perform_manual_reconciliation(source.id, "Suministros", Scope.PERSONAL)

        assert result.backfill.updated == 1
        assert result.backfill.total == 2

    def test_zero_limit_updates_nothing(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        log_repo: SQLiteLearningLogRepository,
        movement_factory,
    ):
        source = movement_factory(description=ENDESA_JAN)
        other = movement_factory(description=ENDESA_FEB, day=date(2024, 2, 1))
        _store(movement_repo, source, other)

        result = learning_service.perform_manual_reconciliation(
            source.id, "Suministros", Scope.PERSONAL, limit=0
        )

        assert result.backfill.updated == 0
        assert result.backfill.total == 1
        assert LearningAction.BACKFILL not in [e.action for e in log_repo.list_all()]

    def test_negative_limit_is_rejected(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        movement_factory,
    ):
        source = movement_factory()
        _store(movement_repo, source)
        learning_service.perform_manual_reconciliation(source.id, "Suministros", Scope.PERSONAL)

        with pytest.raises(ValueError):
            learning_service.backfill(
                learn_key_for(source), ACCOUNT_A, ReconciliationPeriod.for_year(2024), limit=-1
            )

    def test_backfill_requires_existing_rule(
        self, learning_service: MovementLearningService
    ):
        with pytest.raises(LearningRuleNotFoundError):
            learning_service.backfill(
                "0000000000000000", ACCOUNT_A, ReconciliationPeriod.for_year(2024)
            )

    def test_failing_row_does_not_undo_earlier_rows(
        self,
        flaky_service: MovementLearningService,
        flaky_repo: FlakyMovementRepository,
        rule_repo: SQLiteLearningRuleRepository,
        log_repo: SQLiteLearningLogRepository,
        movement_factory,
    ):
        source = movement_factory(description=ENDESA_JAN, day=date(2024, 1, 15))
        february = movement_factory(description=ENDESA_FEB, day=date(2024, 2, 15))
        march = movement_factory(description=ENDESA_MAR, day=date(2024, 3, 15))
        april = movement_factory(description=ENDESA_FEB, day=date(2024, 4, 15))
        _store(flaky_repo, source, february, march, april)
        flaky_repo.fail_ids = {march.id}
        flaky_repo.fail_status = ReconciliationStatus.AUTO_MATCHED

        result = flaky_service.perform_manual_reconciliation(
            source.id, "Suministros", Scope.PERSONAL
        )

        assert result.backfill.updated == 2
        assert result.backfill.failed == (march.id,)
        assert flaky_repo.get(february.id).reconciliation_status == ReconciliationStatus.AUTO_MATCHED
        assert flaky_repo.get(march.id).is_unmatched
        assert flaky_repo.get(april.id).reconciliation_status == ReconciliationStatus.AUTO_MATCHED
        assert flaky_repo.get(source.id).reconciliation_status == ReconciliationStatus.MANUAL_MATCHED
        assert rule_repo.get_by_learn_key(result.learn_key) is not None
        backfill = [e for e in log_repo.list_all() if e.action == LearningAction.BACKFILL]
        assert backfill[0].affected_count == 2


class TestReconciliationAtomicity:
    def test_failed_self_update_removes_new_rule(
        self,
        flaky_service: MovementLearningService,
        flaky_repo: FlakyMovementRepository,
        rule_repo: SQLiteLearningRuleRepository,
        log_repo: SQLiteLearningLogRepository,
        movement_factory,
    ):
        source = movement_factory()
        _store(flaky_repo, source)
        flaky_repo.fail_ids = {source.id}
        flaky_repo.fail_status = ReconciliationStatus.MANUAL_MATCHED

        with pytest.raises(PersistenceError):
            flaky_service.perform_manual_reconciliation(source.id, "Suministros", Scope.PERSONAL)

        assert rule_repo.get_by_learn_key(learn_key_for(source)) is None
        assert list(log_repo.list_all()) == []
        assert flaky_repo.get(source.id).is_unmatched

    def test_failed_self_update_restores_previous_rule(
        self,
        flaky_service: MovementLearningService,
        flaky_repo: FlakyMovementRepository,
        rule_repo: SQLiteLearningRuleRepository,
        log_repo: SQLiteLearningLogRepository,
        movement_factory,
    ):
        first = movement_factory(description=ENDESA_JAN)
        second = movement_factory(description=ENDESA_FEB, day=date(2025, 2, 15))
        _store(flaky_repo, first, second)
        flaky_service.perform_manual_reconciliation(first.id, "Suministros", Scope.PERSONAL)
        flaky_repo.fail_ids = {second.id}
        flaky_repo.fail_status = ReconciliationStatus.MANUAL_MATCHED

        with pytest.raises(PersistenceError):
            flaky_service.perform_manual_reconciliation(second.id, "Ocio", Scope.PERSONAL)

        rule = rule_repo.get_by_learn_key(learn_key_for(first))
        assert rule.category == "Suministros"
        assert [e.action for e in log_repo.list_all()] == [LearningAction.CREATE_RULE]


class TestApplyRulesOnImport:
    @pytest.fixture
    def learned_key(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        movement_factory,
    ) -> str:
        source = movement_factory(description=ENDESA_JAN)
        _store(movement_repo, source)
        result = learning_service.perform_manual_reconciliation(
            source.id, "Suministros", Scope.PERSONAL
        )
        return result.learn_key

    def test_applies_rule_regardless_of_account_and_year(
        self,
        learning_service: MovementLearningService,
        rule_repo: SQLiteLearningRuleRepository,
        log_repo: SQLiteLearningLogRepository,
        learned_key: str,
        movement_factory,
    ):
        incoming = [
            movement_factory(description=ENDESA_FEB, account_id=ACCOUNT_B, day=date(2025, 2, 15)),
            movement_factory(description=ENDESA_MAR, account_id=ACCOUNT_A, day=date(2026, 3, 15)),
            movement_factory(description="MERCADONA COMPRA TARJETA"),
        ]

        result = learning_service.apply_all_rules_on_import(incoming)

        assert [m.reconciliation_status for m in result] == [
            ReconciliationStatus.AUTO_MATCHED,
            ReconciliationStatus.AUTO_MATCHED,
            ReconciliationStatus.UNMATCHED,
        ]
        assert result[0].category == "Suministros"
        assert all(m.learn_key for m in result)
        assert result[2].learn_key == learn_key_for(incoming[2])

        applied = [e for e in log_repo.list_all() if e.action == LearningAction.APPLY_RULE]
        assert len(applied) == 1
        assert applied[0].learn_key == learned_key
        assert applied[0].affected_count == 2
        assert rule_repo.get_by_learn_key(learned_key).applied_count == 2

    def test_inputs_are_not_mutated(
        self,
        learning_service: MovementLearningService,
        learned_key: str,
        movement_factory,
    ):
        incoming = movement_factory(description=ENDESA_FEB)

        result = learning_service.apply_all_rules_on_import([incoming])

        assert result[0] is not incoming
        assert incoming.is_unmatched
        assert incoming.learn_key is None

    def test_second_pass_is_a_no_op(
        self,
        learning_service: MovementLearningService,
        log_repo: SQLiteLearningLogRepository,
        learned_key: str,
        movement_factory,
    ):
        first_pass = learning_service.apply_all_rules_on_import(
            [movement_factory(description=ENDESA_FEB), movement_factory(description=ENDESA_MAR)]
        )
        entries_before = list(log_repo.list_all())

        second_pass = learning_service.apply_all_rules_on_import(first_pass)

        assert second_pass == first_pass
        assert list(log_repo.list_all()) == entries_before

    def test_manual_matches_are_left_alone(
        self,
        learning_service: MovementLearningService,
        learned_key: str,
        movement_factory,
    ):
        reviewed = movement_factory(description=ENDESA_FEB)
        reviewed.reconciliation_status = ReconciliationStatus.MANUAL_MATCHED
        reviewed.category = "Reclamación"

        result = learning_service.apply_all_rules_on_import([reviewed])

        assert result[0].reconciliation_status == ReconciliationStatus.MANUAL_MATCHED
        assert result[0].category == "Reclamación"

    def test_no_rules_means_no_log(
        self,
        learning_service: MovementLearningService,
        log_repo: SQLiteLearningLogRepository,
        movement_factory,
    ):
        result = learning_service.apply_all_rules_on_import([movement_factory()])

        assert result[0].is_unmatched
        assert list(log_repo.list_all()) == []

    def test_import_movements_persists(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        learned_key: str,
        movement_factory,
    ):
        incoming = movement_factory(description=ENDESA_FEB, account_id=ACCOUNT_B)

        learning_service.import_movements([incoming])

        stored = movement_repo.get(incoming.id)
        assert stored.reconciliation_status == ReconciliationStatus.AUTO_MATCHED
        assert stored.learn_key == learned_key


class TestRuleManagement:
    def test_create_learning_rule(
        self,
        learning_service: MovementLearningService,
        log_repo: SQLiteLearningLogRepository,
    ):
        rule = learning_service.create_learning_rule("a1b2c3d4e5f60718", "Seguros", Scope.PERSONAL)

        assert rule.source == RuleSource.MANUAL
        assert learning_service.get_learning_logs("a1b2c3d4e5f60718")[0].action == (
            LearningAction.CREATE_RULE
        )

    def test_create_learning_rule_rejects_duplicates(
        self, learning_service: MovementLearningService
    ):
        learning_service.create_learning_rule("a1b2c3d4e5f60718", "Seguros", Scope.PERSONAL)

        with pytest.raises(DuplicateLearnKeyError):
            learning_service.create_learning_rule("a1b2c3d4e5f60718", "Otros", Scope.PERSONAL)

    def test_create_learning_rule_requires_key(
        self, learning_service: MovementLearningService
    ):
        with pytest.raises(LearningRuleValidationError):
            learning_service.create_learning_rule(" ", "Seguros", Scope.PERSONAL)

    def test_rules_stats(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        movement_factory,
    ):
        source = movement_factory(description=ENDESA_JAN)
        other = movement_factory(description=ENDESA_FEB, day=date(2024, 2, 1))
        _store(movement_repo, source, other)
        learning_service.perform_manual_reconciliation(source.id, "Suministros", Scope.PERSONAL)
        learning_service.create_learning_rule("a1b2c3d4e5f60718", "Seguros", Scope.PERSONAL)

        stats = learning_service.get_rules_stats(recent=1)

        assert stats.total_rules == 2
        assert stats.total_applications == 1
        assert len(stats.recent_rules) == 1

    def test_log_never_contains_description_or_account(
        self,
        learning_service: MovementLearningService,
        movement_repo: SQLiteMovementRepository,
        movement_factory,
    ):
        source = movement_factory(description=ENDESA_JAN)
        other = movement_factory(description=ENDESA_FEB, day=date(2024, 2, 1))
        _store(movement_repo, source, other)
        learning_service.perform_manual_reconciliation(source.id, "Suministros", Scope.PERSONAL)

        for entry in learning_service.get_learning_logs():
            rendered = repr(entry)
            assert "ENDESA" not in rendered
            assert ACCOUNT_A not in rendered


class TestAuditBeforeCounters:
    def test_backfill_is_audited_even_when_rule_counters_fail(
        self,
        db: SQLiteDatabase,
        movement_repo: SQLiteMovementRepository,
        log_repo: SQLiteLearningLogRepository,
        movement_factory,
    ):
        service = MovementLearningService(
            movement_repo, FailingRuleCounterRepository(db), log_repo
        )
        source = movement_factory(description=ENDESA_JAN)
        sibling = movement_factory(description=ENDESA_FEB, day=date(2024, 2, 15))
        _store(movement_repo, source, sibling)

        with pytest.raises(PersistenceError):
            service.perform_manual_reconciliation(source.id, "Suministros", Scope.PERSONAL)

        assert (
            movement_repo.get(sibling.id).reconciliation_status
            == ReconciliationStatus.AUTO_MATCHED
        )
        entries = list(log_repo.list_all())
        assert [e.action for e in entries] == [
            LearningAction.CREATE_RULE,
            LearningAction.BACKFILL,
        ]
        assert entries[1].affected_count == 1

    def test_import_is_audited_even_when_rule_counters_fail(
        self,
        db: SQLiteDatabase,
        movement_repo: SQLiteMovementRepository,
        log_repo: SQLiteLearningLogRepository,
        movement_factory,
    ):
        service = MovementLearningService(
            movement_repo, FailingRuleCounterRepository(db), log_repo
        )
        service.create_learning_rule(
            learn_key_for(movement_factory()), "Suministros", Scope.PERSONAL
        )

        with pytest.raises(PersistenceError):
            service.apply_all_rules_on_import([movement_factory(description=ENDESA_FEB)])

        assert [e.action for e in log_repo.list_all()] == [
            LearningAction.CREATE_RULE,
            LearningAction.APPLY_RULE,
        ]
