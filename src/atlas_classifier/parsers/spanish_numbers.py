"""Spanish (es-ES) number parsing and formatting.

Comma is the decimal separator and dot (or space) the thousands separator.
Parsing is deterministic and never raises for malformed text: every problem
comes back as a MonetaryParseResult with an error kind, so callers decide
whether an unparsable value turns into a doubt.

Rules, in order:
- currency symbols, whitespace (including NBSP and thin spaces) and, when
  allowed, the percent sign are stripped
- a leading minus or wrapping parentheses mark a negative value
- anti-join guard: if the original OCR text had a ",dd" decimal fragment that
  is gone from the input ("34,56" collapsed into "3456"), fail with
  DECIMAL_LOSS before interpreting anything
- more than one comma is INVALID_FORMAT
- with a comma: comma is decimal, dots before it are thousands
- dots only: exactly two digits after the last dot means decimal (machine
  exported bank files), otherwise every dot is a thousands separator
- drift above 5% against the OCR provider's own value, or a provider value
  that is not a finite number, is VALUE_DRIFT, but the
  computed value is still returned
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from atlas_classifier.domain.value_objects import ParseErrorKind

_CURRENCY_PATTERN = re.compile(r"[€$£¥]|EUR", re.IGNORECASE)
_WHITESPACE_PATTERN = re.compile(r"[\s\u00a0\u2009\u202f]+")
_REFERENCE_DECIMAL_PATTERN = re.compile(r",(\d{1,2})(?!\d)")
_DIGITS_PATTERN = re.compile(r"[0-9]+")

MAX_RELATIVE_DRIFT = Decimal("0.05")
HARMONY_TOLERANCE_CENTS = 1


@dataclass(frozen=True)
class MonetaryParseResult:
    value: Decimal | None
    error_kind: ParseErrorKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error_kind is None and self.value is not None


@dataclass(frozen=True)
class HarmonyCheck:
    is_valid: bool
    expected_total: Decimal
    difference: Decimal


def _invalid(message: str) -> MonetaryParseResult:
    return MonetaryParseResult(
        value=None, error_kind=ParseErrorKind.INVALID_FORMAT, message=message
    )


def _is_digits(text: str) -> bool:
    return bool(_DIGITS_PATTERN.fullmatch(text))


def _quantum(decimals: int) -> Decimal:
    return Decimal(1).scaleb(-decimals)


def parse_es_number(
    text: str | None,
    *,
    allow_percent: bool = False,
    max_decimals: int = 2,
    reference_text: str | None = None,
    external_normalized_value: Decimal | float | str | None = None,
) -> MonetaryParseResult:
    """Parse Spanish-formatted numeric text into an exact Decimal.

    Args:
        text: The (possibly externally normalized) text to parse.
        allow_percent: Accept and strip a percent sign.
        max_decimals: Maximum fractional digits accepted and kept.
        reference_text: Original OCR mention used by the anti-join guard.
        external_normalized_value: OCR provider's own reading, for drift checks.

    Returns:
        MonetaryParseResult; error_kind is None on success.
    """
    if text is None or not text.strip():
        return _invalid("Valor vacío")

    cleaned = _CURRENCY_PATTERN.sub("", text)
    cleaned = _WHITESPACE_PATTERN.sub("", cleaned)

    if "%" in cleaned:
        if not allow_percent:
            return _invalid("Signo de porcentaje no permitido")
        cleaned = cleaned.replace("%", "")

    negative = False
    if len(cleaned) >= 2 and cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
        cleaned = cleaned[1:-1]
    if cleaned.startswith("-"):
        negative = True
        cleaned = cleaned[1:]
    elif cleaned.startswith("+"):
        cleaned = cleaned[1:]

    if not cleaned:
        return _invalid("Sin dígitos")

    if reference_text:
        fragment = _REFERENCE_DECIMAL_PATTERN.search(reference_text)
        if fragment and f",{fragment.group(1)}" not in cleaned:
            return MonetaryParseResult(
                value=None,
                error_kind=ParseErrorKind.DECIMAL_LOSS,
                message=f"Parte decimal ,{fragment.group(1)} perdida al normalizar",
            )

    if cleaned.count(",") > 1:
        return _invalid("Más de una coma decimal")

    if "," in cleaned:
        integer_part, decimal_part = cleaned.split(",")
        integer_part = integer_part.replace(".", "")
        if not decimal_part or len(decimal_part) > max_decimals:
            return _invalid(
                f"Parte decimal de {len(decimal_part)} dígitos (máximo {max_decimals})"
            )
        if not _is_digits(integer_part) or not _is_digits(decimal_part):
            return _invalid("Dígitos no válidos en la parte entera o decimal")
        value = Decimal(f"{integer_part}.{decimal_part}")
    elif "." in cleaned:
        head, _, tail = cleaned.rpartition(".")
        if len(tail) == 2:
            integer_part = head.replace(".", "")
            if not _is_digits(integer_part) or not _is_digits(tail):
                return _invalid("Formato no válido para punto decimal")
            value = Decimal(f"{integer_part}.{tail}")
        else:
            integer_part = cleaned.replace(".", "")
            if not _is_digits(integer_part):
                return _invalid("Dígitos no válidos con separador de miles")
            value = Decimal(integer_part)
    else:
        if not _is_digits(cleaned):
            return _invalid("Dígitos no válidos")
        value = Decimal(cleaned)

    if negative:
        value = -value

    rounded = value.quantize(_quantum(max_decimals), rounding=ROUND_HALF_UP)

    if external_normalized_value is not None:
        try:
            reference = Decimal(str(external_normalized_value).strip())
        except InvalidOperation:
            reference = None
        if reference is None or not reference.is_finite():
            return MonetaryParseResult(
                value=rounded,
                error_kind=ParseErrorKind.VALUE_DRIFT,
                message="Valor normalizado del proveedor no numérico",
            )
        drift = abs(value - reference) / max(abs(reference), Decimal(1))
        if drift > MAX_RELATIVE_DRIFT:
            return MonetaryParseResult(
                value=rounded,
                error_kind=ParseErrorKind.VALUE_DRIFT,
                message=f"Desviación del {drift * 100:.1f}% respecto al valor normalizado",
            )

    return MonetaryParseResult(value=rounded)


def parse_es_percentage(text: str | None) -> MonetaryParseResult:
    """Parse a Spanish percentage ("8,52 %") into a normalized rate (0.0852)."""
    result = parse_es_number(text, allow_percent=True, max_decimals=2)
    if result.value is None:
        return result
    return MonetaryParseResult(
        value=result.value / Decimal(100),
        error_kind=result.error_kind,
        message=result.message,
    )


def format_es_number(value: Decimal | int | str, decimals: int = 2) -> str:
    """Render a value with grouping dots and a decimal comma ("1.234,56")."""
    quantized = Decimal(str(value)).quantize(_quantum(decimals), rounding=ROUND_HALF_UP)
    sign = "-" if quantized < 0 else ""
    integer, _, fraction = f"{abs(quantized):f}".partition(".")
    grouped = f"{int(integer):,}".replace(",", ".")
    if fraction:
        return f"{sign}{grouped},{fraction}"
    return f"{sign}{grouped}"


def format_es_currency(value: Decimal | int | str) -> str:
    return f"{format_es_number(value)} €"


def format_es_percentage(rate: Decimal | float | str, decimals: int = 2) -> str:
    """Render a normalized rate (0.0852) as "8,52 %"."""
    return f"{format_es_number(Decimal(str(rate)) * 100, decimals)} %"


def _to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def validate_invoice_harmony(
    net: Decimal,
    tax: Decimal,
    total: Decimal,
    discounts: Decimal = Decimal(0),
) -> HarmonyCheck:
    """Check base + IVA - discounts against the total within one cent."""
    expected_cents = _to_cents(net) + _to_cents(tax) - _to_cents(discounts)
    difference_cents = abs(_to_cents(total) - expected_cents)
    return HarmonyCheck(
        is_valid=difference_cents <= HARMONY_TOLERANCE_CENTS,
        expected_total=Decimal(expected_cents) / 100,
        difference=Decimal(difference_cents) / 100,
    )
