from enum import Enum


class DocType(str, Enum):
    INVOICE = "invoice"
    RECEIPT = "receipt"
    BANK_STATEMENT = "bank_statement"
    CONTRACT = "contract"
    OTHER = "other"


class ParseErrorKind(str, Enum):
    DECIMAL_LOSS = "decimal_loss"
    INVALID_FORMAT = "invalid_format"
    VALUE_DRIFT = "value_drift"


class ReconciliationStatus(str, Enum):
    UNMATCHED = "unmatched"
    AUTO_MATCHED = "auto_matched"
    MANUAL_MATCHED = "manual_matched"


class Scope(str, Enum):
    PERSONAL = "personal"
    PROPERTY = "property"


class RuleSource(str, Enum):
    IMPLICIT = "implicit"
    MANUAL = "manual"


class LearningAction(str, Enum):
    CREATE_RULE = "create_rule"
    UPDATE_RULE = "update_rule"
    APPLY_RULE = "apply_rule"
    BACKFILL = "backfill"


class AmountSign(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


class DuplicateKind(str, Enum):
    EXACT = "exact"
    HEURISTIC = "heuristic"


class FilingStatus(str, Enum):
    IMPORTED = "imported"
    INCOMPLETE = "incomplete"
    PENDING = "pending"
    DUPLICATE = "duplicate"
