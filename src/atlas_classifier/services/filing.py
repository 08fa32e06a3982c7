"""Filing decision for classified documents."""

from atlas_classifier.domain.documents import (
    ClassificationPolicy,
    ClassificationResult,
    FilingDecision,
)
from atlas_classifier.domain.value_objects import FilingStatus
from atlas_classifier.logging_config import get_logger

logger = get_logger(__name__)

DESTINATION_LABELS = {
    "tesoreria-gastos": "Tesorería > Gastos",
    "tesoreria-capex": "Tesorería > CAPEX",
    "tesoreria-movimientos": "Tesorería > Movimientos",
    "horizon-contratos": "Horizon > Contratos",
    "archivo-general": "Archivo > Referencias",
}


def destination_label(destination: str) -> str:
    return DESTINATION_LABELS.get(destination, destination)


def decide_filing(
    result: ClassificationResult, policy: ClassificationPolicy
) -> FilingDecision:
    """Turn a classification into an inbox status.

    Duplicates are never filed. Clear documents are IMPORTED into their
    destination. The rest stay INCOMPLETE when auto-filing is on, waiting
    for the missing data, or PENDING review when it is off.
    """
    if result.is_duplicate:
        decision = FilingDecision(
            status=FilingStatus.DUPLICATE,
            message="Documento duplicado: no se archiva",
        )
    elif result.is_ready_to_file:
        label = destination_label(result.suggested_destination)
        decision = FilingDecision(
            status=FilingStatus.IMPORTED,
            message=f"Archivado en {label}",
            destination_label=label,
        )
    else:
        status = (
            FilingStatus.INCOMPLETE if policy.auto_file_enabled else FilingStatus.PENDING
        )
        decision = FilingDecision(
            status=status,
            message="Revisar: " + "; ".join(result.doubts),
        )

    logger.debug("filing_decided", status=decision.status.value)
    return decision
