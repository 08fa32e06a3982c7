"""Learn key derivation for bank movements.

A learn key identifies "the same kind of movement from the same biller".
Text is upper-cased and stripped of diacritics and punctuation, then volatile
tokens (anything with a digit, month names, reference markers) are dropped
along with legal-entity suffixes and stopwords. The remaining description
tokens split into channel tokens, the bank's own wording for the operation
(RECIBO, DOMICILIADO, SEPA, TRANSFERENCIA, ...), and subject tokens, which
name the biller or payee. That gives:

- identity: the normalized counterparty, or the first two subject tokens
  when there is no counterparty
- concept: the ordered channel tokens, or the first subject token not in
  the identity when the description has no channel wording

A description that names no biller (only channel wording and volatile
tokens) falls back to its whole normalized text as identity, so such
movements never share a key by accident.

The key is the first 16 hex characters of sha1("identity|concept|sign").
"""

import hashlib
import re
import unicodedata
from decimal import Decimal

from atlas_classifier.domain.movements import Movement
from atlas_classifier.domain.value_objects import AmountSign

LEGAL_SUFFIXES = frozenset(
    {"SA", "SL", "SAU", "SLU", "SLL", "SCOOP", "COOP", "CB", "SC", "SLNE", "INC", "LTD", "LLC"}
)

STOPWORDS = frozenset(
    {"DE", "DEL", "LA", "EL", "LOS", "LAS", "Y", "E", "EN", "POR", "PARA", "A", "AL", "CON", "THE", "OF", "AND"}
)

REFERENCE_MARKERS = frozenset(
    {"REF", "REFERENCIA", "NUM", "NUMERO", "N", "NO", "NRO", "FRA", "FACT", "ID"}
)

MONTH_TOKENS = frozenset(
    {
        "ENE", "FEB", "MAR", "ABR", "MAY", "JUN", "JUL", "AGO", "SEP", "SEPT", "OCT", "NOV", "DIC",
        "ENERO", "FEBRERO", "MARZO", "ABRIL", "MAYO", "JUNIO", "JULIO", "AGOSTO",
        "SEPTIEMBRE", "SETIEMBRE", "OCTUBRE", "NOVIEMBRE", "DICIEMBRE",
        "JAN", "APR", "AUG", "DEC",
    }
)

CHANNEL_TOKENS = frozenset(
    {
        "RECIBO", "RECIBOS", "DOMICILIADO", "DOMICILIACION", "SEPA", "ADEUDO", "CARGO",
        "ABONO", "TRANSFERENCIA", "TRANSF", "TRF", "FAVOR", "EMITIDA", "RECIBIDA",
        "ORDEN", "PAGO", "COMPRA", "TARJETA", "CUOTA", "BIZUM", "INGRESO", "REINTEGRO",
        "CAJERO", "DEVOLUCION", "COMISION",
    }
)

IDENTITY_TOKENS_FROM_DESCRIPTION = 2
MAX_CHANNEL_TOKENS = 4
KEY_LENGTH = 16

_NON_WORD = re.compile(r"[^A-Z0-9]+")


def normalize_text(text: str | None) -> str:
    """Upper-case, strip diacritics and replace punctuation with spaces."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    ascii_text = decomposed.encode("ascii", "ignore").decode("ascii").upper()
    return " ".join(_NON_WORD.sub(" ", ascii_text).split())


def _is_volatile(token: str) -> bool:
    return (
        any(char.isdigit() for char in token)
        or token in MONTH_TOKENS
        or token in REFERENCE_MARKERS
    )


def significant_tokens(text: str | None) -> list[str]:
    return [
        token
        for token in normalize_text(text).split()
        if len(token) > 1
        and not _is_volatile(token)
        and token not in LEGAL_SUFFIXES
        and token not in STOPWORDS
    ]


def describe_pattern(
    counterparty: str | None, description: str | None
) -> tuple[str, str]:
    """Return the (identity, concept) pair a learn key is built from."""
    description_tokens = significant_tokens(description)
    channel = [token for token in description_tokens if token in CHANNEL_TOKENS]
    subject = [token for token in description_tokens if token not in CHANNEL_TOKENS]

    identity_tokens = significant_tokens(counterparty)
    if not identity_tokens:
        identity_tokens = subject[:IDENTITY_TOKENS_FROM_DESCRIPTION]

    if channel:
        concept = " ".join(channel[:MAX_CHANNEL_TOKENS])
    else:
        concept = next((token for token in subject if token not in identity_tokens), "")

    identity = " ".join(identity_tokens)
    if not identity:
        identity = normalize_text(counterparty) or normalize_text(description)
    return identity, concept


def build_learn_key(
    counterparty: str | None, description: str | None, amount: Decimal
) -> str:
    identity, concept = describe_pattern(counterparty, description)
    sign = AmountSign.POSITIVE if amount >= 0 else AmountSign.NEGATIVE
    signature = f"{identity}|{concept}|{sign.value}"
    return hashlib.sha1(signature.encode("utf-8")).hexdigest()[:KEY_LENGTH]


def learn_key_for(movement: Movement) -> str:
    return build_learn_key(movement.counterparty, movement.description, movement.amount)
