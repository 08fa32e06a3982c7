"""Duplicate document detection."""

from collections.abc import Iterable
from decimal import Decimal

from atlas_classifier.domain.documents import (
    CanonicalFields,
    DocumentFingerprint,
    DuplicateMatch,
)
from atlas_classifier.domain.value_objects import DuplicateKind
from atlas_classifier.logging_config import get_logger

logger = get_logger(__name__)


class DuplicateDetector:
    """Flags documents already present in the inbox or archive.

    Matching rules:
    - Exact: same filename and same size in bytes
    - Heuristic: same provider (case-insensitive), same issue date and a
      total within AMOUNT_TOLERANCE; only when all three are known

    A document never matches itself (same document_id).
    """

    AMOUNT_TOLERANCE = Decimal("0.01")

    def fingerprint(
        self,
        document_id: str,
        filename: str,
        size: int | None,
        fields: CanonicalFields,
    ) -> DocumentFingerprint:
        return DocumentFingerprint(
            document_id=document_id,
            filename=filename,
            size=size,
            provider=fields.provider,
            issue_date=fields.issue_date,
            total_amount=fields.total_amount,
        )

    def find_duplicate(
        self,
        candidate: DocumentFingerprint,
        existing: Iterable[DocumentFingerprint],
    ) -> DuplicateMatch | None:
        """Return the first stored document the candidate duplicates, if any.

        Exact matches take precedence over heuristic ones.
        """
        heuristic: DuplicateMatch | None = None
        checked = 0

        for other in existing:
            if other.document_id == candidate.document_id:
                continue
            checked += 1
            if self._is_exact(candidate, other):
                logger.info(
                    "duplicate_detected",
                    kind=DuplicateKind.EXACT.value,
                    document_id=candidate.document_id,
                    existing_id=other.document_id,
                )
                return DuplicateMatch(kind=DuplicateKind.EXACT, existing_id=other.document_id)
            if heuristic is None and self._is_heuristic(candidate, other):
                heuristic = DuplicateMatch(
                    kind=DuplicateKind.HEURISTIC, existing_id=other.document_id
                )

        if heuristic is not None:
            logger.info(
                "duplicate_detected",
                kind=heuristic.kind.value,
                document_id=candidate.document_id,
                existing_id=heuristic.existing_id,
            )
        else:
            logger.debug(
                "duplicate_check_clear",
                document_id=candidate.document_id,
                documents_checked=checked,
            )
        return heuristic

    def is_duplicate(
        self,
        candidate: DocumentFingerprint,
        existing: Iterable[DocumentFingerprint],
    ) -> bool:
        return self.find_duplicate(candidate, existing) is not None

    @staticmethod
    def _is_exact(candidate: DocumentFingerprint, other: DocumentFingerprint) -> bool:
        if candidate.size is None or other.size is None:
            return False
        return candidate.filename == other.filename and candidate.size == other.size

    def _is_heuristic(
        self, candidate: DocumentFingerprint, other: DocumentFingerprint
    ) -> bool:
        if (
            not candidate.provider
            or candidate.issue_date is None
            or candidate.total_amount is None
        ):
            return False
        if not other.provider or other.issue_date is None or other.total_amount is None:
            return False
        return (
            candidate.provider.strip().casefold() == other.provider.strip().casefold()
            and candidate.issue_date == other.issue_date
            and abs(candidate.total_amount - other.total_amount) <= self.AMOUNT_TOLERANCE
        )
