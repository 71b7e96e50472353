# FILE: app/errors.py
# ==============================================================================
# Error taxonomy shared by every operation. Each error carries the HTTP status
# the API layer renders it with.
# ==============================================================================
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class NaOdludzieError(Exception):
    """Base class for all domain errors."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(NaOdludzieError):
    """Bad input shape, date range or quota."""
    status_code = 400


class AuthenticationError(NaOdludzieError):
    """Missing or invalid bearer credential."""
    status_code = 401


class AuthorizationError(NaOdludzieError):
    """Role or ownership mismatch."""
    status_code = 403


class NotFoundError(NaOdludzieError):
    status_code = 404


class InvalidStateError(NaOdludzieError):
    """Transition attempted from a state that does not allow it."""
    status_code = 409


class BookingConflictError(InvalidStateError):
    """Approving would overlap dates that are already taken."""


class ConfigurationError(NaOdludzieError):
    """Payment adapter or service configuration not ready."""
    status_code = 422


class UpstreamError(NaOdludzieError):
    """A third-party feed, map, payment or email call failed."""
    status_code = 502


async def domain_error_handler(request: Request, exc: NaOdludzieError):
    if exc.status_code >= 500:
        logging.error(f"API: {request.method} {request.url.path} failed upstream: {exc.message}")
    else:
        logging.info(f"API: {request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NaOdludzieError, domain_error_handler)
