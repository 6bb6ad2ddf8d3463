from fastapi import HTTPException, status

from core.entities.errors import (
    BillingError,
    HardCapExceeded,
    InsufficientCredits,
    InvalidGenerationParams,
    PlanLimitExceeded,
    TransientStoreError,
    UserNotFound,
)

_STATUS_BY_ERROR = (
    (InsufficientCredits, status.HTTP_402_PAYMENT_REQUIRED),
    (HardCapExceeded, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (PlanLimitExceeded, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidGenerationParams, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (UserNotFound, status.HTTP_404_NOT_FOUND),
)


def to_http_error(exc: Exception) -> HTTPException:
    """Map a billing or store failure to the response the client sees."""
    if isinstance(exc, TransientStoreError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": exc.code, "message": "Temporarily unavailable, retry the request"},
        )
    if isinstance(exc, BillingError):
        for error_type, code in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                return HTTPException(status_code=code, detail=exc.to_detail())
        # unknown catalog keys, bad periods
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_detail())
    raise TypeError(f"not a billing error: {exc!r}")
