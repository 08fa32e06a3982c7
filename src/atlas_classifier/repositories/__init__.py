from atlas_classifier.repositories.interfaces import (
    LearningLogRepository,
    LearningRuleRepository,
    MovementRepository,
)
from atlas_classifier.repositories.sqlite import (
    SQLiteDatabase,
    SQLiteLearningLogRepository,
    SQLiteLearningRuleRepository,
    SQLiteMovementRepository,
)

__all__ = [
    "LearningLogRepository",
    "LearningRuleRepository",
    "MovementRepository",
    "SQLiteDatabase",
    "SQLiteLearningLogRepository",
    "SQLiteLearningRuleRepository",
    "SQLiteMovementRepository",
]
