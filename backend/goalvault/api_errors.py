"""Map domain errors onto HTTP responses."""

from __future__ import annotations

import logging

from fastapi import HTTPException

from goalvault.errors import (
    AuthorizationError,
    ExternalDependencyError,
    GoalNotFound,
    GoalVaultError,
    StateError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_CATEGORY: tuple[tuple[type[GoalVaultError], int], ...] = (
    (GoalNotFound, 404),
    (AuthorizationError, 403),
    (StateError, 409),
    (ExternalDependencyError, 503),
    (ValidationError, 422),
)


def http_error(exc: GoalVaultError) -> HTTPException:
    status_code = 400
    for category, code in STATUS_BY_CATEGORY:
        if isinstance(exc, category):
            status_code = code
            break

    logger.warning("rejected %s (%s): %s", type(exc).__name__, status_code, exc)
    return HTTPException(status_code=status_code, detail=str(exc) or type(exc).__name__)
