"""Dependency injection container for the ATLAS classifier.

Provides centralized dependency management using a simple container pattern:
repositories and services are built from Settings on first access and
cached for reuse.

Usage:
    from atlas_classifier.container import Container, get_container

    container = get_container()
    outcome = container.triage_service.triage(document_id, raw_fields, signals)
    container.learning_service.perform_manual_reconciliation(movement_id, "Suministros", Scope.PERSONAL)
"""

from functools import cached_property, lru_cache
from typing import TYPE_CHECKING

from atlas_classifier.config import Settings, get_settings
from atlas_classifier.domain.documents import ClassificationPolicy
from atlas_classifier.exceptions import ConfigurationError
from atlas_classifier.logging_config import get_logger

if TYPE_CHECKING:
    from atlas_classifier.repositories.sqlite import (
        SQLiteDatabase,
        SQLiteLearningLogRepository,
        SQLiteLearningRuleRepository,
        SQLiteMovementRepository,
    )
    from atlas_classifier.services.document_classifier import DocumentClassifier
    from atlas_classifier.services.duplicate_detector import DuplicateDetector
    from atlas_classifier.services.field_extractor import FieldExtractor
    from atlas_classifier.services.movement_learning import MovementLearningService
    from atlas_classifier.services.triage import DocumentTriageService

logger = get_logger(__name__)


class Container:
    """Dependency injection container.

    The container can be configured with custom settings for testing:

        test_settings = Settings(sqlite_path=":memory:", auto_file_enabled=True)
        container = Container(settings=test_settings)
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        logger.debug(
            "container_created",
            environment=self._settings.environment.value,
            auto_file_enabled=self._settings.auto_file_enabled,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    @cached_property
    def policy(self) -> ClassificationPolicy:
        """Classification policy snapshot taken when first requested."""
        return self._settings.classification_policy()

    @cached_property
    def database(self) -> "SQLiteDatabase":
        """Get the SQLite database, initialized on first access.

        Raises:
            ConfigurationError: If sqlite_path points at a directory or at a
                missing parent directory.
        """
        from atlas_classifier.repositories.sqlite import SQLiteDatabase

        path = self._settings.sqlite_path
        if str(path) != ":memory:":
            if path.is_dir():
                raise ConfigurationError(
                    f"sqlite_path is a directory: {path}",
                    context={"sqlite_path": str(path)},
                )
            if not path.parent.exists():
                raise ConfigurationError(
                    f"sqlite_path parent directory does not exist: {path.parent}",
                    context={"sqlite_path": str(path)},
                )

        logger.info("initializing_sqlite_database", path=str(path))
        db = SQLiteDatabase(path)
        db.initialize()
        return db

    @cached_property
    def movement_repository(self) -> "SQLiteMovementRepository":
        from atlas_classifier.repositories.sqlite import SQLiteMovementRepository

        return SQLiteMovementRepository(self.database)

    @cached_property
    def rule_repository(self) -> "SQLiteLearningRuleRepository":
        from atlas_classifier.repositories.sqlite import SQLiteLearningRuleRepository

        return SQLiteLearningRuleRepository(self.database)

    @cached_property
    def log_repository(self) -> "SQLiteLearningLogRepository":
        from atlas_classifier.repositories.sqlite import SQLiteLearningLogRepository

        return SQLiteLearningLogRepository(self.database)

    @cached_property
    def field_extractor(self) -> "FieldExtractor":
        from atlas_classifier.services.field_extractor import FieldExtractor

        return FieldExtractor(default_confidence=self._settings.default_field_confidence)

    @cached_property
    def duplicate_detector(self) -> "DuplicateDetector":
        from atlas_classifier.services.duplicate_detector import DuplicateDetector

        return DuplicateDetector()

    @cached_property
    def document_classifier(self) -> "DocumentClassifier":
        from atlas_classifier.services.document_classifier import DocumentClassifier

        return DocumentClassifier()

    @cached_property
    def triage_service(self) -> "DocumentTriageService":
        """Get the document triage pipeline."""
        from atlas_classifier.services.triage import DocumentTriageService

        return DocumentTriageService(
            self.field_extractor,
            self.duplicate_detector,
            self.document_classifier,
            self.policy,
        )

    @cached_property
    def learning_service(self) -> "MovementLearningService":
        """Get the movement learning service."""
        from atlas_classifier.services.movement_learning import MovementLearningService

        return MovementLearningService(
            self.movement_repository,
            self.rule_repository,
            self.log_repository,
            default_backfill_limit=self._settings.backfill_batch_limit,
        )

    def close(self) -> None:
        """Close all resources held by the container.

        Should be called during application shutdown.
        """
        database = self.__dict__.get("database")
        if database is not None:
            logger.info("closing_database_connection")
            database.close()

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


_container: Container | None = None


@lru_cache
def get_container() -> Container:
    """Get the global container singleton.

    For testing, create a Container directly with custom settings instead
    of using this function.
    """
    global _container
    if _container is None:
        _container = Container()
    return _container


def reset_container() -> None:
    """Reset the global container.

    Used primarily for testing to ensure a fresh container state.
    """
    global _container
    if _container is not None:
        _container.close()
        _container = None
    get_container.cache_clear()
