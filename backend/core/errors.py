# backend/core/errors.py
# Hub exceptions (routers map these onto HTTPException)

from typing import Any, List, Optional

from fastapi import HTTPException


class HubError(Exception):
    """Base error"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(HubError):
    """Missing or invalid settings"""
    status_code = 500


class TokenError(HubError):
    """Zoho access token unavailable"""
    status_code = 401


class CRMError(HubError):
    """Zoho API returned an error response"""
    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.payload = payload


class WorkflowError(HubError):
    """Workflow could not run or an action failed"""
    status_code = 400


class WorkflowNotFound(WorkflowError):
    status_code = 404


class BulkImportError(HubError):
    """Spreadsheet could not be imported"""
    status_code = 400


class ValidationFailed(HubError):
    """Input rejected; errors holds one message per problem"""
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


def to_http_exception(error: HubError) -> HTTPException:
    """Router helper: HubError -> HTTPException with the error's status"""
    detail: Any = error.message
    if isinstance(error, ValidationFailed):
        detail = {"message": error.message, "errors": error.errors}
    return HTTPException(status_code=error.status_code, detail=detail)
