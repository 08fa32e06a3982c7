from atlas_classifier.domain.documents import (
    CanonicalFields,
    ClassificationPolicy,
    ClassificationResult,
    DocumentSignals,
    RawField,
)
from atlas_classifier.domain.movements import LearningRule, Movement
from atlas_classifier.domain.value_objects import DocType, ReconciliationStatus, Scope

__all__ = [
    "CanonicalFields",
    "ClassificationPolicy",
    "ClassificationResult",
    "DocType",
    "DocumentSignals",
    "LearningRule",
    "Movement",
    "RawField",
    "ReconciliationStatus",
    "Scope",
]

__version__ = "0.1.0"
