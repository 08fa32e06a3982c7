"""Document-side domain models: extracted fields, policy and classification output."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from atlas_classifier.domain.value_objects import (
    DocType,
    DuplicateKind,
    FilingStatus,
    ParseErrorKind,
)

CRITICAL_FIELDS = ("provider", "total_amount", "issue_date")

CANONICAL_FIELD_NAMES = (
    "provider",
    "tax_id",
    "invoice_number",
    "issue_date",
    "due_date",
    "net_amount",
    "tax_amount",
    "total_amount",
    "iban_masked",
    "service_address",
)


class FieldRequirement(str, Enum):
    """A field (or field alternative) a document type must carry to be filed."""

    PROVIDER = "provider"
    TAX_ID = "tax_id"
    INVOICE_NUMBER = "invoice_number"
    ISSUE_DATE = "issue_date"
    DUE_DATE = "due_date"
    CHARGE_DATE = "charge_date"
    TOTAL_AMOUNT = "total_amount"
    IBAN = "iban"
    SERVICE_ADDRESS = "service_address"


@dataclass(frozen=True)
class RawField:
    """One field as reported by the OCR/extraction collaborator.

    mention_text is the text the OCR engine saw before any normalization;
    normalized_value is the provider's own numeric reading, when it has one.
    """

    name: str
    value: str
    confidence: float | None = None
    mention_text: str | None = None
    normalized_value: Decimal | float | str | None = None


@dataclass(frozen=True)
class FieldIssue:
    field: str
    kind: ParseErrorKind
    message: str


@dataclass(frozen=True)
class CanonicalFields:
    """Canonical per-document field record.

    Produced once per extraction pass and never mutated; re-extraction
    yields a new record. The unmasked IBAN is never stored here.
    """

    provider: str | None = None
    tax_id: str | None = None
    invoice_number: str | None = None
    issue_date: date | None = None
    due_date: date | None = None
    net_amount: Decimal | None = None
    tax_amount: Decimal | None = None
    total_amount: Decimal | None = None
    iban_masked: str | None = None
    service_address: str | None = None
    field_confidence: Mapping[str, float] = field(default_factory=dict)
    issues: tuple[FieldIssue, ...] = ()

    @property
    def present_fields(self) -> list[str]:
        return [name for name in CANONICAL_FIELD_NAMES if getattr(self, name) is not None]

    @property
    def global_confidence(self) -> float:
        """Mean confidence of the fields actually present.

        Absent fields are excluded from the average. Zero when none of the
        critical fields (provider, total, issue date) was extracted.
        """
        present = self.present_fields
        if not any(name in present for name in CRITICAL_FIELDS):
            return 0.0
        scores = [self.field_confidence.get(name, 0.0) for name in present]
        return round(sum(scores) / len(scores), 4)

    @property
    def amounts_reconcile(self) -> bool | None:
        """Whether net + tax matches the total within one cent.

        None when net, tax or total is missing. A mismatch is only reported,
        the total is never corrected.
        """
        from atlas_classifier.parsers.spanish_numbers import validate_invoice_harmony

        if None in (self.net_amount, self.tax_amount, self.total_amount):
            return None
        return validate_invoice_harmony(
            self.net_amount, self.tax_amount, self.total_amount
        ).is_valid


@dataclass(frozen=True)
class ClassificationPolicy:
    """Read-only classification settings snapshot passed into classify()."""

    auto_file_enabled: bool = False
    confidence_thresholds: Mapping[DocType, float] = field(default_factory=dict)
    required_fields: Mapping[DocType, frozenset[FieldRequirement]] = field(
        default_factory=dict
    )
    capex_amount_threshold: Decimal = Decimal("3000.00")

    DEFAULT_THRESHOLD = 0.80

    def threshold_for(self, doc_type: DocType) -> float:
        return self.confidence_thresholds.get(doc_type, self.DEFAULT_THRESHOLD)

    def requirements_for(self, doc_type: DocType) -> frozenset[FieldRequirement]:
        return self.required_fields.get(doc_type, frozenset())


@dataclass(frozen=True)
class DocumentSignals:
    """Raw, non-field signals about a document.

    extra_doubts lets upstream stages (ingestion, manual flags) add reasons
    that must be reviewed before the document is filed.
    """

    filename: str
    mime_type: str = ""
    text_sample: str | None = None
    extra_doubts: tuple[str, ...] = ()


@dataclass(frozen=True)
class ClassificationResult:
    doc_type: DocType
    confidence: float
    is_ready_to_file: bool
    doubts: tuple[str, ...]
    suggested_destination: str
    fields: CanonicalFields
    is_capex: bool = False
    is_duplicate: bool = False
    matched_keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class DocumentFingerprint:
    """What the duplicate detector knows about a stored or incoming document."""

    document_id: str
    filename: str
    size: int | None = None
    provider: str | None = None
    issue_date: date | None = None
    total_amount: Decimal | None = None


@dataclass(frozen=True)
class DuplicateMatch:
    kind: DuplicateKind
    existing_id: str


@dataclass(frozen=True)
class FilingDecision:
    status: FilingStatus
    message: str
    destination_label: str | None = None
