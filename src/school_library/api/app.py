"""
FastAPI application for the loan service.

Every response uses the same envelope::

    {"success": true, "message": "...", "data": {...}, "statusCode": 200}

Failures add ``error``, the stable machine-readable kind of the exception
(``person_not_eligible``, ``loan_already_returned``...), and keep
``success: false``. Request validation failures are reported as 400.
Keys inside ``data`` are camelCase (``dueDate``, ``wasOverdue``...).
"""

import logging
from collections.abc import Callable, Generator
from datetime import datetime
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import LibraryConfig, get_config
from ..database.exceptions import RepositoryException
from ..database.session import DatabaseManager, get_db_manager
from ..loans.errors import PersonNotEligible
from ..loans.notifications import LoggingNotificationSink, NotificationSink
from ..loans.service import LoanService

logger = logging.getLogger(__name__)


def envelope(
    data: Any = None,
    message: str = "OK",
    status_code: int = 200,
    success: bool = True,
    error: str | None = None,
) -> JSONResponse:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", by_alias=True)
    body: dict[str, Any] = {
        "success": success,
        "message": message,
        "data": jsonable_encoder(data),
        "statusCode": status_code,
    }
    if error is not None:
        body["error"] = error
    return JSONResponse(status_code=status_code, content=body)


def get_loan_service(request: Request) -> Generator[LoanService, None, None]:
    """Request-scoped LoanService on its own session."""
    state = request.app.state
    session = state.db_manager.create_session()
    try:
        yield LoanService(
            session,
            config=state.config,
            notifier=state.notifier,
            clock=state.clock,
        )
    finally:
        session.close()


LoanServiceDep = Depends(get_loan_service)


async def repository_exception_handler(request: Request, exc: RepositoryException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s refused (%s): %s", request.method, request.url.path, exc.kind, exc.message)

    data = None
    if isinstance(exc, PersonNotEligible) and exc.result is not None:
        data = exc.result
    return envelope(
        data=data,
        message=exc.message,
        status_code=exc.status_code,
        success=False,
        error=exc.kind,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # noqa: ARG001
    return envelope(
        data={"errors": exc.errors()},
        message="Invalid request",
        status_code=400,
        success=False,
        error="validation_error",
    )


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:  # noqa: ARG001
    return envelope(message=str(exc), status_code=400, success=False, error="invalid_request")


def create_app(
    db_manager: DatabaseManager | None = None,
    config: LibraryConfig | None = None,
    notifier: NotificationSink | None = None,
    clock: Callable[[], datetime] = datetime.now,
) -> FastAPI:
    """Build the REST application.

    Args:
        db_manager: database to serve; defaults to the global manager
        config: loan policy; defaults to the global configuration
        notifier: sink for loan events; defaults to logging them
        clock: source of "now" for every request
    """
    from .routes import router

    config = config or get_config()
    app = FastAPI(
        title="School Library Loans",
        version=config.server_version,
        description="Loan lifecycle service: eligibility, availability, renewals and returns.",
    )
    app.state.db_manager = db_manager or get_db_manager()
    app.state.config = config
    app.state.notifier = notifier or LoggingNotificationSink()
    app.state.clock = clock

    app.add_exception_handler(RepositoryException, repository_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValueError, value_error_handler)

    @app.get("/health")
    def health(request: Request):
        database_ok = request.app.state.db_manager.verify_connection()
        return envelope(
            data={"status": "ok" if database_ok else "degraded", "database": database_ok},
            message="Service healthy" if database_ok else "Database unavailable",
        )

    app.include_router(router)
    return app
