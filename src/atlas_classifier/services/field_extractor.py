"""Field extraction: raw OCR fields into a CanonicalFields record.

Maps field-name synonyms to canonical slots, parses amounts with the Spanish
number parser and dates with the date normalizer, masks IBANs on sight and
keeps per-field confidence.
"""

import re
import unicodedata
from collections.abc import Iterable
from typing import Any

from atlas_classifier.domain.documents import CanonicalFields, FieldIssue, RawField
from atlas_classifier.domain.value_objects import DocType, ParseErrorKind
from atlas_classifier.logging_config import get_logger
from atlas_classifier.parsers.dates import normalize_date
from atlas_classifier.parsers.spanish_numbers import parse_es_number

logger = get_logger(__name__)


def _normalize_name(name: str) -> str:
    decomposed = unicodedata.normalize("NFKD", name)
    ascii_name = decomposed.encode("ascii", "ignore").decode("ascii").lower()
    return re.sub(r"[^a-z0-9]+", "_", ascii_name).strip("_")


def mask_iban(iban: str) -> str:
    """Keep the first and last four characters of an IBAN."""
    compact = re.sub(r"\s+", "", iban).upper()
    if len(compact) < 8:
        return "****"
    return f"{compact[:4]}****{compact[-4:]}"


class FieldExtractor:
    """Builds CanonicalFields from the OCR collaborator's field list.

    When a slot receives several candidates, the most confident one wins.
    Fields without an explicit confidence get DEFAULT_CONFIDENCE rather
    than being treated as certain.
    """

    DEFAULT_CONFIDENCE = 0.70

    FIELD_SYNONYMS: dict[str, tuple[str, ...]] = {
        "provider": (
            "supplier_name",
            "vendor_name",
            "vendor",
            "supplier",
            "provider",
            "proveedor",
            "emisor",
            "razon_social",
        ),
        "tax_id": ("supplier_tax_id", "tax_id", "nif", "cif", "nif_cif", "vat_id"),
        "invoice_number": (
            "invoice_id",
            "invoice_number",
            "numero_factura",
            "num_factura",
        ),
        "issue_date": ("invoice_date", "issue_date", "fecha", "fecha_emision", "fecha_factura"),
        "due_date": ("due_date", "fecha_vencimiento", "fecha_cargo"),
        "net_amount": ("net_amount", "base_imponible", "base", "subtotal"),
        "tax_amount": ("total_tax_amount", "tax_amount", "vat_amount", "iva", "cuota_iva"),
        "total_amount": ("total_amount", "total", "importe", "importe_total", "amount"),
        "iban_masked": ("iban", "account_number", "cuenta", "cuenta_cargo"),
        "service_address": ("service_address", "receiver_address", "direccion_suministro"),
    }

    AMOUNT_SLOTS = frozenset({"net_amount", "tax_amount", "total_amount"})
    DATE_SLOTS = frozenset({"issue_date", "due_date"})

    def __init__(self, default_confidence: float | None = None) -> None:
        self._default_confidence = (
            self.DEFAULT_CONFIDENCE if default_confidence is None else default_confidence
        )
        self._slot_by_name = {
            synonym: slot
            for slot, synonyms in self.FIELD_SYNONYMS.items()
            for synonym in synonyms
        }

    def slot_for(self, name: str) -> str | None:
        return self._slot_by_name.get(_normalize_name(name))

    def extract(
        self,
        raw_fields: Iterable[RawField],
        doc_type_hint: DocType | None = None,
    ) -> CanonicalFields:
        """Normalize raw fields into a new CanonicalFields record.

        Unparsable amounts and dates leave their slot empty and are reported
        as FieldIssues; value drift keeps the value and reports the issue.
        """
        values: dict[str, Any] = {}
        confidences: dict[str, float] = {}
        chosen_issues: dict[str, FieldIssue] = {}
        failed_issues: dict[str, FieldIssue] = {}
        ignored = 0

        for raw in raw_fields:
            slot = self.slot_for(raw.name)
            if slot is None:
                ignored += 1
                continue
            if raw.value is None or not raw.value.strip():
                continue

            value, issue = self._normalize(slot, raw)
            if value is None:
                if issue is not None:
                    failed_issues.setdefault(slot, issue)
                continue

            confidence = self._confidence_of(raw)
            if slot in values and confidences[slot] >= confidence:
                continue
            values[slot] = value
            confidences[slot] = confidence
            if issue is not None:
                chosen_issues[slot] = issue
            else:
                chosen_issues.pop(slot, None)

        issues = list(chosen_issues.values())
        issues.extend(issue for slot, issue in failed_issues.items() if slot not in values)

        fields = CanonicalFields(
            **values,
            field_confidence=confidences,
            issues=tuple(issues),
        )
        logger.debug(
            "fields_extracted",
            doc_type_hint=doc_type_hint.value if doc_type_hint else None,
            present=fields.present_fields,
            issues=len(fields.issues),
            ignored=ignored,
            global_confidence=fields.global_confidence,
        )
        return fields

    def _confidence_of(self, raw: RawField) -> float:
        if raw.confidence is None:
            return self._default_confidence
        return min(max(float(raw.confidence), 0.0), 1.0)

    def _normalize(self, slot: str, raw: RawField) -> tuple[Any, FieldIssue | None]:
        if slot in self.AMOUNT_SLOTS:
            result = parse_es_number(
                raw.value,
                reference_text=raw.mention_text,
                external_normalized_value=raw.normalized_value,
            )
            issue = None
            if result.error_kind is not None:
                issue = FieldIssue(field=slot, kind=result.error_kind, message=result.message)
            return result.value, issue

        if slot in self.DATE_SLOTS:
            parsed = normalize_date(raw.value)
            if parsed is None:
                return None, FieldIssue(
                    field=slot,
                    kind=ParseErrorKind.INVALID_FORMAT,
                    message="Fecha con formato no reconocido",
                )
            return parsed, None

        if slot == "iban_masked":
            return mask_iban(raw.value), None

        if slot == "tax_id":
            return re.sub(r"[\s\-.]+", "", raw.value).upper() or None, None

        return " ".join(raw.value.split()), None
