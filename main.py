"""
Main FastAPI application entry point for Identity Reconciliation System
This file sets up the FastAPI application with configuration, middleware,
error mapping and the /identify endpoint. It serves as the entry point
for both local development (uvicorn) and AWS Lambda deployment.
"""

import logging
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from database import DatabaseManager
from schemas.identify import IdentifyRequest, IdentifyResponse, ErrorResponse
from services.errors import ReconciliationError
from services.identity_service import IdentityService
from services.locks import IdentifierLocks

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    debug=settings.DEBUG
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


def get_db_manager(request: Request) -> DatabaseManager:
    """
    Database manager for this application instance, created on first use
    (Lambda runs with lifespan events disabled)
    """
    manager = getattr(request.app.state, "db_manager", None)
    if manager is None:
        manager = DatabaseManager()
        request.app.state.db_manager = manager
    return manager


def get_identity_service(
    request: Request,
    db_manager: DatabaseManager = Depends(get_db_manager)
) -> IdentityService:
    # One lock table per application so every request serializes against the others
    locks = getattr(request.app.state, "identifier_locks", None)
    if locks is None:
        locks = request.app.state.identifier_locks = IdentifierLocks()
    return IdentityService(db_manager, locks=locks)


def _error(status_code: int, error: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message, details=details).model_dump()
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request body validation errors"""
    logger.warning(f"Validation error for {request.url}: {exc.errors()}")

    error_details = [
        {
            "field": " -> ".join(str(x) for x in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        }
        for error in exc.errors()
    ]
    return _error(400, "ValidationError", "Request validation failed", {"errors": error_details})


@app.exception_handler(ReconciliationError)
async def reconciliation_exception_handler(request: Request, exc: ReconciliationError):
    """Map the reconciliation error taxonomy onto HTTP responses"""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} for {request.url}: {exc.message}")
    else:
        logger.warning(f"{type(exc).__name__} for {request.url}: {exc.message}")

    if exc.kind == "validation":
        return _error(exc.status_code, "ValidationError", exc.message)
    if exc.kind == "store_unavailable":
        return _error(exc.status_code, "StoreUnavailable",
                      "Contact store is currently unavailable. Please try again later.")
    if exc.kind == "concurrency_conflict":
        return _error(exc.status_code, "ConcurrencyConflict",
                      "A conflicting request is in progress. Please retry.")
    return _error(500, "InternalServerError", "Unable to process identity reconciliation request")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return _error(404, "NotFound", "Endpoint not found")
    return _error(exc.status_code, "HTTPError", str(exc.detail))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors"""
    logger.error(f"Unexpected error for {request.url}: {exc}", exc_info=exc)
    message = "An unexpected error occurred" if settings.is_production() else str(exc)
    return _error(500, "InternalServerError", message)


@app.get("/")
async def root():
    """
    Root endpoint that returns basic API information
    """
    return {
        "status": "OK",
        "message": "Identity Reconciliation API is running",
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "endpoints": {
            "identify": "/identify",
            "health": "/health"
        }
    }


@app.get("/health")
async def health_check(db_manager: DatabaseManager = Depends(get_db_manager)):
    """
    Health check endpoint for monitoring and load balancer health checks
    """
    db_status = "connected" if await db_manager.test_connection() else "disconnected"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "environment": settings.ENVIRONMENT,
        "version": settings.API_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "lambda": settings.is_lambda_environment(),
        "database": {
            "status": db_status,
            "dialect": db_manager.dialect_name
        }
    }


@app.post("/identify", response_model=IdentifyResponse)
async def identify_endpoint(
    request: IdentifyRequest,
    identity_service: IdentityService = Depends(get_identity_service)
):
    """
    Main identity reconciliation endpoint

    Links customer identities based on email and/or phone number.
    Returns consolidated contact information including all linked emails,
    phone numbers, and secondary contact IDs.

    **Outcomes:**
    - New customer: creates a primary contact
    - Known customer with new email or phone: records a secondary contact
    - Exact resubmission: nothing is written
    - Email of one customer with phone of another: the younger primary
      becomes a secondary of the older one
    """
    logger.info(f"Processing identify request: email={request.email}, phone={request.phoneNumber}")

    response = await identity_service.identify_contact(request)

    logger.info(f"Processed identify request. Primary contact ID: {response.contact.primaryContactId}")
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1
    )
