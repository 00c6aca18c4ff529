from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from tablestore.logging.logger import get_logger
from tablestore.response import ResponseModel
from typing import Any, List
from tablestore.config import settings

logger = get_logger("exception_handler")

class BusinessException(Exception):
    """Base class for business exceptions."""
    def __init__(self, message: str, status_code: int = 200, code: int = 400, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.detail = detail


class StoreError(BusinessException):
    """Base class for failures reported by the table store."""
    def __init__(self, message: str, code: int = 500, detail: Any = None):
        super().__init__(message, code=code, detail=detail)


class NotFoundError(StoreError):
    """Read, replace or delete target (or its table) does not exist."""
    def __init__(self, message: str, detail: Any = None):
        super().__init__(message, code=404, detail=detail)


class ConcurrencyConflictError(StoreError):
    """Concurrency token supplied with a write no longer matches the stored row."""
    def __init__(self, message: str, detail: Any = None):
        super().__init__(message, code=409, detail=detail)


class DuplicateKeyError(StoreError):
    """Insert collided with an existing (partition_key, row_key)."""
    def __init__(self, message: str, detail: Any = None):
        super().__init__(message, code=409, detail=detail)


class StoreUnavailableError(StoreError):
    """Transport or infrastructure failure talking to the store."""
    def __init__(self, message: str, detail: Any = None):
        super().__init__(message, code=503, detail=detail)


class UnitOfWorkStateError(BusinessException):
    """A write was attempted through a unit of work that is no longer open."""
    def __init__(self, message: str):
        super().__init__(message, code=400)


class CompensationError(BusinessException):
    """
    One or more compensations failed while rolling back a unit of work.

    The data is left partially undone. Every failure is kept in ``failures``
    as (compensation, exception) pairs, in the order they were attempted.
    """
    def __init__(self, failures: List[Any]):
        self.failures = list(failures)
        summary = "; ".join(f"{item.compensation.describe()}: {item.error}" for item in self.failures)
        super().__init__(
            f"Rollback incomplete, {len(self.failures)} compensation(s) failed: {summary}",
            code=500,
            detail=[item.compensation.describe() for item in self.failures],
        )


def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    trace_id = getattr(request.state, "trace_id", "unknown")

    if isinstance(exc, CompensationError):
        logger.error(f"Trace[{trace_id}] - CompensationError: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=ResponseModel.fail(code=exc.code, message="Rollback incomplete", data=exc.detail)
        )

    if isinstance(exc, StoreUnavailableError):
        logger.critical(f"Trace[{trace_id}] - StoreUnavailable: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=ResponseModel.fail(code=exc.code, message="Service temporarily unavailable")
        )

    if isinstance(exc, BusinessException):
        logger.warning(f"Trace[{trace_id}] - BusinessError: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=ResponseModel.fail(code=exc.code, message=exc.message)
        )

    if isinstance(exc, RequestValidationError):
        logger.error(f"Trace[{trace_id}] - ValidationError: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ResponseModel.fail(code=422, message="Invalid request parameters", data=exc.errors())
        )

    logger.opt(exception=True).error(f"Trace[{trace_id}] - UncaughtException: {str(exc)}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ResponseModel.fail(
            code=500,
            message="System busy, please try again later",
            data={"trace_id": trace_id} if settings.DEBUG else None
        )
    )
