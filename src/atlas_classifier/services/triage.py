"""Document triage: extraction, duplicate check, classification and filing."""

from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from atlas_classifier.domain.documents import (
    CanonicalFields,
    ClassificationPolicy,
    ClassificationResult,
    DocumentFingerprint,
    DocumentSignals,
    DuplicateMatch,
    FilingDecision,
    RawField,
)
from atlas_classifier.logging_config import get_logger
from atlas_classifier.services.document_classifier import DocumentClassifier
from atlas_classifier.services.duplicate_detector import DuplicateDetector
from atlas_classifier.services.field_extractor import FieldExtractor
from atlas_classifier.services.filing import decide_filing

logger = get_logger(__name__)


@dataclass(frozen=True)
class TriageOutcome:
    fields: CanonicalFields
    fingerprint: DocumentFingerprint
    duplicate: DuplicateMatch | None
    result: ClassificationResult
    decision: FilingDecision


class DocumentTriageService:
    """Runs one document through the whole classification pipeline."""

    def __init__(
        self,
        extractor: FieldExtractor,
        detector: DuplicateDetector,
        classifier: DocumentClassifier,
        policy: ClassificationPolicy,
    ) -> None:
        self._extractor = extractor
        self._detector = detector
        self._classifier = classifier
        self._policy = policy

    def triage(
        self,
        document_id: str,
        raw_fields: Iterable[RawField],
        signals: DocumentSignals,
        size: int | None = None,
        existing: Iterable[DocumentFingerprint] = (),
    ) -> TriageOutcome:
        """Extract, check for duplicates, classify and decide filing.

        Args:
            document_id: Identifier of the incoming document.
            raw_fields: Fields reported by the OCR collaborator.
            signals: Filename, mime type and text sample.
            size: File size in bytes, for exact duplicate matching.
            existing: Fingerprints of documents already stored.
        """
        with structlog.contextvars.bound_contextvars(document_id=document_id):
            fields = self._extractor.extract(raw_fields)
            fingerprint = self._detector.fingerprint(document_id, signals.filename, size, fields)
            duplicate = self._detector.find_duplicate(fingerprint, existing)
            result = self._classifier.classify(
                fields, signals, self._policy, is_duplicate=duplicate is not None
            )
            decision = decide_filing(result, self._policy)

            logger.info(
                "document_triaged",
                document_id=document_id,
                doc_type=result.doc_type.value,
                status=decision.status.value,
            )
        return TriageOutcome(
            fields=fields,
            fingerprint=fingerprint,
            duplicate=duplicate,
            result=result,
            decision=decision,
        )
