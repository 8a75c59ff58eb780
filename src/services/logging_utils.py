"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across QA, allocation, recall and release
operations.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    # Log successful operation
    log_operation(
        logger,
        operation="complete_batch",
        outcome="success",
        batch_id=123,
        release_status="pending",
    )

    # Log a gate failure
    log_operation(
        logger,
        operation="complete_batch",
        outcome="incomplete_qa",
        level=logging.WARNING,
        batch_id=123,
        pending_checkpoints=["MIX-TEMP"],
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "batch_qa.services"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured logger instance with the 'batch_qa.services' prefix.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'batch_qa.services.qa_service'
    """
    # Extract just the module name if full path is provided
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via the 'extra' parameter for structured logging,
    so handlers can read e.g. ``record.batch_id``.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "record_check", "allocate_lots")
        outcome: Outcome description (e.g., "success", "shortfall", "error")
        level: Log level (default: INFO). Use DEBUG for verbose/frequent logs.
        **context: Additional context fields (entity IDs, error details, etc.)
            Common fields:
            - batch_id: Batch being processed
            - lot_id: Lot being allocated or recalled
            - checkpoint_id: Checkpoint being recorded
            - error: Error message if outcome is "error"
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
