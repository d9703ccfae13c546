"""
    Centralized exception handling for the FastAPI application.
"""
from typing import List, Optional, Union
from fastapi import Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging

log = logging.getLogger(__name__)

class APIException(Exception):
    """Base class for API exceptions."""
    def __init__(self, status_code: int, detail: str, path: Optional[List[Union[str, int]]] = None):
        self.status_code = status_code
        self.detail = detail
        self.path = path
        super().__init__(self.detail)

class ValidationException(APIException):
    """Exception for a malformed, missing or out-of-range request field."""
    def __init__(self, detail: str, path: Optional[List[Union[str, int]]] = None):
        super().__init__(status_code=400, detail=detail, path=path)

class InvalidImageException(ValidationException):
    """Exception for invalid image files."""
    def __init__(self, detail: str):
        super().__init__(detail=detail, path=["file"])

class InvalidTagException(ValidationException):
    """Exception for tag payloads that are malformed or reference no known tag."""
    def __init__(self, detail: str):
        super().__init__(detail=detail, path=["tags"])

class PageOutOfRangeException(APIException):
    """Requested page lies past the end of the result set."""
    def __init__(self, page: int, total_pages: int):
        self.page = page
        self.total_pages = total_pages
        super().__init__(status_code=400, detail="Page number exceeds total pages.")

class AuthenticationException(APIException):
    """Missing, expired or invalid credentials."""
    def __init__(self, detail: str):
        super().__init__(status_code=401, detail=detail)

class ConflictException(APIException):
    """Exception for unique constraint violations."""
    def __init__(self, detail: str):
        super().__init__(status_code=409, detail=detail)

class S3UploadException(APIException):
    """Exception for S3 failures."""
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)

class DatabaseException(APIException):
    """Exception for metadata store failures."""
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)

class TranscodeException(APIException):
    """Exception for image transcoding failures."""
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)

# Internal failures are logged in full but reported opaquely.
INTERNAL_ERROR_DETAIL = "An error occurred."

async def api_exception_handler(request: Request, exc: APIException):
    """Handles API exceptions."""
    log.error(f"API Exception: {exc.detail}", exc_info=exc)
    content = {"detail": exc.detail if exc.status_code < 500 else INTERNAL_ERROR_DETAIL}
    if exc.path:
        content["path"] = exc.path
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
    )

async def http_exception_handler(request: Request, exc: HTTPException):
    """Handles FastAPI HTTP exceptions."""
    log.error(f"HTTP Exception: {exc.detail}", exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Reports the first invalid request field as a 400."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    # Drop the "query"/"body" location prefix so the path names the field itself
    loc = [part for part in first.get("loc", ()) if part not in ("query", "body", "form")]
    log.info("Request validation failed: %s", errors)
    return JSONResponse(
        status_code=400,
        content={"detail": first.get("msg", "Invalid request."), "path": loc},
    )

async def generic_exception_handler(request: Request, exc: Exception):
    """Handles all other exceptions."""
    log.error(f"Unhandled Exception: {str(exc)}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred."},
    )

def add_exception_handlers(app):
    """Adds exception handlers to the FastAPI app."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
