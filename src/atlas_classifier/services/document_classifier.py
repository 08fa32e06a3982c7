"""Document classifier using a rules-based engine.

Determines a document type, a confidence score, the doubts that block
filing and a suggested destination from extracted fields, raw signals and a
ClassificationPolicy snapshot. Never raises for malformed input: missing or
unparsable data lowers confidence or adds a doubt.
"""

import re
import unicodedata
from collections.abc import Iterable

from atlas_classifier.domain.documents import (
    CanonicalFields,
    ClassificationPolicy,
    ClassificationResult,
    DocumentSignals,
    FieldRequirement,
)
from atlas_classifier.domain.value_objects import DocType
from atlas_classifier.logging_config import get_logger

logger = get_logger(__name__)

DUPLICATE_DOUBT = "Documento duplicado"
IVA_MISMATCH_DOUBT = "IVA inconsistente"
UNKNOWN_BANK_TEMPLATE_DOUBT = "Plantilla bancaria no reconocida"

CAPEX_DESTINATION = "tesoreria-capex"


def _fold(text: str | None) -> str:
    """Lower-case and strip diacritics for keyword matching."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    return decomposed.encode("ascii", "ignore").decode("ascii").lower()


def _keyword_pattern(keywords: Iterable[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(_fold(keyword)) for keyword in keywords)
    return re.compile(rf"(?<![a-z0-9])(?:{alternatives})(?![a-z0-9])")


class DocumentClassifier:
    """Classifies documents into DocType with ordered rules.

    Candidate types are collected from keywords, fields and file metadata;
    ties go to the first type in TYPE_PRIORITY. Confidence is a per-type
    base score plus additive per-field boosts, capped at 1.0. The base
    scores and boosts are tunable constants.
    """

    TYPE_PRIORITY = (
        DocType.CONTRACT,
        DocType.BANK_STATEMENT,
        DocType.INVOICE,
        DocType.RECEIPT,
    )

    BASE_SCORES = {
        DocType.INVOICE: 0.70,
        DocType.BANK_STATEMENT: 0.80,
        DocType.CONTRACT: 0.60,
        DocType.RECEIPT: 0.65,
        DocType.OTHER: 0.30,
    }

    FIELD_BOOSTS = {
        "provider": 0.15,
        "total_amount": 0.10,
        "tax_id": 0.05,
        "invoice_number": 0.05,
        "issue_date": 0.05,
        "due_date": 0.05,
        "net_amount": 0.05,
        "tax_amount": 0.05,
        "iban_masked": 0.05,
    }
    BANK_TEMPLATE_BOOST = 0.10

    DESTINATIONS = {
        DocType.INVOICE: "tesoreria-gastos",
        DocType.RECEIPT: "tesoreria-gastos",
        DocType.BANK_STATEMENT: "tesoreria-movimientos",
        DocType.CONTRACT: "horizon-contratos",
        DocType.OTHER: "archivo-general",
    }

    BANK_EXPORT_EXTENSIONS = (".csv", ".xls", ".xlsx", ".ofx")
    BANK_EXPORT_MIME_TYPES = (
        "text/csv",
        "application/csv",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/x-ofx",
    )
    BANKING_HEADERS = [
        "fecha valor",
        "fecha operacion",
        "fecha contable",
        "concepto",
        "importe",
        "saldo",
        "movimiento",
        "debe",
        "haber",
    ]
    MIN_BANKING_HEADERS = 2
    STATEMENT_FILENAME_KEYWORDS = ["extracto", "movimientos"]
    KNOWN_BANKS = [
        "santander",
        "bbva",
        "caixabank",
        "sabadell",
        "bankinter",
        "ing",
        "unicaja",
        "kutxabank",
        "abanca",
        "openbank",
        "ibercaja",
    ]

    INVOICE_KEYWORDS = [
        "factura",
        "invoice",
        "iva",
        "base imponible",
        "cuota iva",
        "kwh",
        "cups",
        "potencia",
        "consumo",
    ]
    KNOWN_SUPPLIERS = [
        "endesa",
        "iberdrola",
        "naturgy",
        "totalenergies",
        "repsol",
        "holaluz",
        "vodafone",
        "movistar",
        "orange",
        "masmovil",
        "yoigo",
        "aqualia",
    ]
    CONTRACT_KEYWORDS = [
        "contrato",
        "arrendamiento",
        "arrendador",
        "arrendatario",
        "clausula",
        "clausulas",
        "reunidos",
    ]
    MIN_CONTRACT_HITS = 2
    RECEIPT_KEYWORDS = [
        "recibo",
        "adeudo sepa",
        "adeudo directo",
        "cuota",
        "cobro periodico",
        "ticket",
    ]
    CAPEX_KEYWORDS = [
        "reforma",
        "obra",
        "albanileria",
        "ampliacion",
        "construccion",
        "instalacion",
        "rehabilitacion",
        "mejora",
    ]

    MISSING_FIELD_DOUBTS = {
        FieldRequirement.PROVIDER: "Proveedor no identificado",
        FieldRequirement.TAX_ID: "NIF/CIF no identificado",
        FieldRequirement.INVOICE_NUMBER: "Número de factura no identificado",
        FieldRequirement.ISSUE_DATE: "Fecha no válida",
        FieldRequirement.DUE_DATE: "Fecha de vencimiento no válida",
        FieldRequirement.CHARGE_DATE: "Fecha de cargo no válida",
        FieldRequirement.TOTAL_AMOUNT: "Importe no válido",
        FieldRequirement.IBAN: "IBAN desconocido",
        FieldRequirement.SERVICE_ADDRESS: "Dirección de suministro no identificada",
    }

    FIELD_LABELS = {
        "provider": "Proveedor",
        "tax_id": "NIF/CIF",
        "invoice_number": "Número de factura",
        "issue_date": "Fecha de emisión",
        "due_date": "Fecha de vencimiento",
        "net_amount": "Base imponible",
        "tax_amount": "Cuota de IVA",
        "total_amount": "Importe total",
        "iban_masked": "IBAN",
        "service_address": "Dirección de suministro",
    }

    DOC_TYPE_LABELS = {
        DocType.INVOICE: "Factura",
        DocType.RECEIPT: "Recibo",
        DocType.BANK_STATEMENT: "Extracto bancario",
        DocType.CONTRACT: "Contrato",
        DocType.OTHER: "Documento",
    }

    def __init__(self) -> None:
        self._banking_headers = _keyword_pattern(self.BANKING_HEADERS)
        self._statement_names = _keyword_pattern(self.STATEMENT_FILENAME_KEYWORDS)
        self._banks = _keyword_pattern(self.KNOWN_BANKS)
        self._invoice = _keyword_pattern(self.INVOICE_KEYWORDS)
        self._suppliers = _keyword_pattern(self.KNOWN_SUPPLIERS)
        self._contract = _keyword_pattern(self.CONTRACT_KEYWORDS)
        self._receipt = _keyword_pattern(self.RECEIPT_KEYWORDS)
        self._capex = _keyword_pattern(self.CAPEX_KEYWORDS)

    def classify(
        self,
        fields: CanonicalFields,
        signals: DocumentSignals,
        policy: ClassificationPolicy,
        is_duplicate: bool = False,
    ) -> ClassificationResult:
        """Classify a document under the given policy.

        Args:
            fields: Canonical fields from the extraction pass.
            signals: Filename, mime type, text sample and upstream doubts.
            policy: Read-only policy snapshot.
            is_duplicate: Result of the duplicate check.

        Returns:
            A ClassificationResult. When it is not ready to file, its doubts
            list says why.
        """
        if is_duplicate:
            logger.info("document_duplicate_short_circuit")
            return ClassificationResult(
                doc_type=DocType.OTHER,
                confidence=0.0,
                is_ready_to_file=False,
                doubts=(DUPLICATE_DOUBT,),
                suggested_destination="",
                fields=fields,
                is_duplicate=True,
            )

        filename = _fold(signals.filename)
        text = " ".join(
            part for part in (filename, _fold(signals.text_sample), _fold(fields.provider)) if part
        )

        doc_type, matched_keywords = self._detect_type(fields, signals, filename, text)
        bank_template = self._banks.search(filename) is not None
        confidence = self._score(doc_type, fields, bank_template)

        hard_doubts = self._missing_field_doubts(fields, policy.requirements_for(doc_type))
        threshold = policy.threshold_for(doc_type)
        if confidence < threshold:
            hard_doubts.append(f"Confianza insuficiente ({confidence:.2f} < {threshold:.2f})")
        if doc_type == DocType.INVOICE and self._iva_mismatch(fields):
            hard_doubts.append(IVA_MISMATCH_DOUBT)

        advisory_doubts = [
            f"{self.FIELD_LABELS.get(issue.field, issue.field)}: {issue.message}"
            for issue in fields.issues
        ]
        if doc_type == DocType.BANK_STATEMENT and not bank_template:
            advisory_doubts.append(UNKNOWN_BANK_TEMPLATE_DOUBT)
        advisory_doubts.extend(doubt for doubt in signals.extra_doubts if doubt)

        # With auto-file disabled, any doubt at all keeps the document pending.
        is_ready = not hard_doubts and (policy.auto_file_enabled or not advisory_doubts)

        is_capex = (
            doc_type == DocType.INVOICE
            and fields.total_amount is not None
            and fields.total_amount > policy.capex_amount_threshold
            and self._capex.search(text) is not None
        )
        destination = CAPEX_DESTINATION if is_capex else self.DESTINATIONS[doc_type]

        result = ClassificationResult(
            doc_type=doc_type,
            confidence=confidence,
            is_ready_to_file=is_ready,
            doubts=tuple(hard_doubts + advisory_doubts),
            suggested_destination=destination,
            fields=fields,
            is_capex=is_capex,
            matched_keywords=matched_keywords,
        )
        logger.info(
            "document_classified",
            doc_type=doc_type.value,
            confidence=confidence,
            ready=is_ready,
            doubts=len(result.doubts),
            destination=destination,
        )
        return result

    def explain(self, result: ClassificationResult) -> str:
        """Render a one-line Spanish summary of a classification."""
        if result.is_duplicate:
            return f"{DUPLICATE_DOUBT}: no se archiva"
        label = self.DOC_TYPE_LABELS[result.doc_type]
        confidence = f"confianza {result.confidence * 100:.0f} %"
        if result.is_ready_to_file:
            return f"{label}: se archiva en {result.suggested_destination} ({confidence})"
        return f"{label}: pendiente de revisión ({confidence}): {'; '.join(result.doubts)}"

    def _detect_type(
        self,
        fields: CanonicalFields,
        signals: DocumentSignals,
        filename: str,
        text: str,
    ) -> tuple[DocType, tuple[str, ...]]:
        candidates: dict[DocType, list[str]] = {}

        # Utility invoices mention "contrato" in passing; the body needs more.
        contract_hits = self._contract.findall(text)
        if self._contract.search(filename) or len(set(contract_hits)) >= self.MIN_CONTRACT_HITS:
            candidates[DocType.CONTRACT] = contract_hits

        if self._is_bank_export(signals, filename):
            candidates[DocType.BANK_STATEMENT] = self._banking_headers.findall(
                _fold(signals.text_sample)
            ) or self._statement_names.findall(filename)

        invoice_hits = self._invoice.findall(text) + self._suppliers.findall(text)
        if invoice_hits or fields.invoice_number or fields.tax_amount is not None:
            candidates[DocType.INVOICE] = invoice_hits

        receipt_hits = self._receipt.findall(text)
        if receipt_hits:
            candidates[DocType.RECEIPT] = receipt_hits

        for doc_type in self.TYPE_PRIORITY:
            if doc_type in candidates:
                keywords = tuple(dict.fromkeys(candidates[doc_type]))
                return doc_type, keywords
        return DocType.OTHER, ()

    def _is_bank_export(self, signals: DocumentSignals, filename: str) -> bool:
        if self._statement_names.search(filename):
            return True
        mime_type = (signals.mime_type or "").lower()
        is_tabular = filename.endswith(self.BANK_EXPORT_EXTENSIONS) or (
            mime_type in self.BANK_EXPORT_MIME_TYPES
        )
        if not is_tabular:
            return False
        headers = set(self._banking_headers.findall(_fold(signals.text_sample)))
        return len(headers) >= self.MIN_BANKING_HEADERS

    def _score(
        self, doc_type: DocType, fields: CanonicalFields, bank_template: bool
    ) -> float:
        score = self.BASE_SCORES[doc_type]
        for name in fields.present_fields:
            score += self.FIELD_BOOSTS.get(name, 0.0)
        if doc_type == DocType.BANK_STATEMENT and bank_template:
            score += self.BANK_TEMPLATE_BOOST
        return round(min(score, 1.0), 4)

    def _missing_field_doubts(
        self, fields: CanonicalFields, requirements: frozenset[FieldRequirement]
    ) -> list[str]:
        present = {
            FieldRequirement.PROVIDER: fields.provider is not None,
            FieldRequirement.TAX_ID: fields.tax_id is not None,
            FieldRequirement.INVOICE_NUMBER: fields.invoice_number is not None,
            FieldRequirement.ISSUE_DATE: fields.issue_date is not None,
            FieldRequirement.DUE_DATE: fields.due_date is not None,
            FieldRequirement.CHARGE_DATE: (
                fields.due_date is not None or fields.issue_date is not None
            ),
            FieldRequirement.TOTAL_AMOUNT: fields.total_amount is not None,
            FieldRequirement.IBAN: fields.iban_masked is not None,
            FieldRequirement.SERVICE_ADDRESS: fields.service_address is not None,
        }
        return [
            self.MISSING_FIELD_DOUBTS[requirement]
            for requirement in FieldRequirement
            if requirement in requirements and not present[requirement]
        ]

    @staticmethod
    def _iva_mismatch(fields: CanonicalFields) -> bool:
        return fields.amounts_reconcile is False
