"""Exception hierarchy for the ATLAS classifier.

All library exceptions inherit from AtlasClassifierError. Malformed input
data never raises: parse problems come back as MonetaryParseResult values and
classification problems as doubts. Exceptions are reserved for caller misuse
(missing required arguments, unknown ids) and for persistence failures.
"""

from typing import Any
from uuid import UUID


class AtlasClassifierError(Exception):
    """Base exception for all ATLAS classifier errors.

    Includes an error_code for API responses and extra context.
    """

    error_code: str = "ATLAS_ERROR"

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(AtlasClassifierError):
    """Base exception for invalid call arguments."""

    error_code = "VALIDATION_ERROR"


class LearningRuleValidationError(ValidationError):
    """Raised when a learning rule cannot be created from the given arguments."""

    error_code = "LEARNING_RULE_INVALID"

    def __init__(self, reason: str) -> None:
        super().__init__(
            "No se pudo crear la regla de aprendizaje",
            context={"reason": reason},
        )
        self.reason = reason


# =============================================================================
# Lookup Errors
# =============================================================================


class NotFoundError(AtlasClassifierError):
    """Base exception for missing records."""

    error_code = "NOT_FOUND"


class MovementNotFoundError(NotFoundError):
    """Raised when a bank movement cannot be found."""

    error_code = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: UUID | str) -> None:
        super().__init__(
            f"Movement not found: {movement_id}",
            context={"movement_id": str(movement_id)},
        )


class LearningRuleNotFoundError(NotFoundError):
    """Raised when no learning rule exists for a learn key."""

    error_code = "LEARNING_RULE_NOT_FOUND"

    def __init__(self, learn_key: str) -> None:
        super().__init__(
            f"Learning rule not found: {learn_key}",
            context={"learn_key": learn_key},
        )


# =============================================================================
# Persistence Errors
# =============================================================================


class PersistenceError(AtlasClassifierError):
    """Raised when the persistence collaborator fails.

    Services propagate it unchanged; only batch backfill isolates it per row.
    """

    error_code = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(
            f"Persistence failure during {operation}: {message}",
            context={"operation": operation},
        )
        self.operation = operation


class DuplicateLearnKeyError(PersistenceError):
    """Raised when inserting a second rule for an existing learn key."""

    error_code = "DUPLICATE_LEARN_KEY"

    def __init__(self, learn_key: str) -> None:
        super().__init__("add_rule", f"learn key already exists: {learn_key}")
        self.context["learn_key"] = learn_key


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(AtlasClassifierError):
    """Raised when the container cannot be built from settings."""

    error_code = "CONFIGURATION_ERROR"
