from atlas_classifier.domain.documents import (
    CanonicalFields,
    ClassificationPolicy,
    ClassificationResult,
    DocumentFingerprint,
    DocumentSignals,
    DuplicateMatch,
    FieldIssue,
    FieldRequirement,
    FilingDecision,
    RawField,
)
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
    AmountSign,
    DocType,
    DuplicateKind,
    FilingStatus,
    LearningAction,
    ParseErrorKind,
    ReconciliationStatus,
    RuleSource,
    Scope,
)

__all__ = [
    "AmountSign",
    "BackfillResult",
    "CanonicalFields",
    "ClassificationPolicy",
    "ClassificationResult",
    "DocType",
    "DocumentFingerprint",
    "DocumentSignals",
    "DuplicateKind",
    "DuplicateMatch",
    "FieldIssue",
    "FieldRequirement",
    "FilingDecision",
    "FilingStatus",
    "LearningAction",
    "LearningLogEntry",
    "LearningRule",
    "LearningRulesStats",
    "ManualReconciliationResult",
    "Movement",
    "ParseErrorKind",
    "RawField",
    "ReconciliationPeriod",
    "ReconciliationStatus",
    "RuleSource",
    "Scope",
]
