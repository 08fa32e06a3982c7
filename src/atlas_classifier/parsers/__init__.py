"""Locale-aware parsers for amounts, percentages and dates."""

from atlas_classifier.parsers.dates import normalize_date, to_iso
from atlas_classifier.parsers.spanish_numbers import (
    HarmonyCheck,
    MonetaryParseResult,
    format_es_currency,
    format_es_number,
    format_es_percentage,
    parse_es_number,
    parse_es_percentage,
    validate_invoice_harmony,
)

__all__ = [
    "HarmonyCheck",
    "MonetaryParseResult",
    "format_es_currency",
    "format_es_number",
    "format_es_percentage",
    "normalize_date",
    "parse_es_number",
    "parse_es_percentage",
    "to_iso",
    "validate_invoice_harmony",
]
