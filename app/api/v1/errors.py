import logging
from typing import NoReturn

from fastapi import HTTPException

from app.core.exceptions import (
    AlreadyExistsError,
    AuthError,
    FleetError,
    InspectionNotAllowedError,
    NotFoundError,
    PermissionDeniedError,
    UnauthenticatedError,
    ValidationError,
    VehicleUnavailableError,
)

logger = logging.getLogger("fleet.api")

STATUS_CODES = [
    (UnauthenticatedError, 401),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (AlreadyExistsError, 409),
    (VehicleUnavailableError, 409),
    (InspectionNotAllowedError, 409),
    (ValidationError, 400),
    (AuthError, 400),
]

def raise_http(error: FleetError) -> NoReturn:
    """Re-raises a domain error as the matching HTTPException."""
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            raise HTTPException(status_code=status_code, detail=error.message)
    logger.error(f"Unhandled domain error: {error}")
    raise HTTPException(status_code=500, detail=error.message)
