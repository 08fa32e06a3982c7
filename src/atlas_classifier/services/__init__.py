from atlas_classifier.services.document_classifier import DocumentClassifier
from atlas_classifier.services.duplicate_detector import DuplicateDetector
from atlas_classifier.services.field_extractor import FieldExtractor, mask_iban
from atlas_classifier.services.filing import decide_filing, destination_label
from atlas_classifier.services.learn_key import (
    build_learn_key,
    describe_pattern,
    learn_key_for,
)
from atlas_classifier.services.movement_learning import MovementLearningService
from atlas_classifier.services.triage import DocumentTriageService, TriageOutcome

__all__ = [
    "DocumentClassifier",
    "DocumentTriageService",
    "DuplicateDetector",
    "FieldExtractor",
    "MovementLearningService",
    "TriageOutcome",
    "build_learn_key",
    "decide_filing",
    "describe_pattern",
    "destination_label",
    "learn_key_for",
    "mask_iban",
]
