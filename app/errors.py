"""
Domain errors raised by the services layer.
Each carries the HTTP status the API answers with.
"""
from fastapi import Request
from fastapi.responses import JSONResponse


class WorkflowError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(WorkflowError):
    status_code = 404


class PermissionDenied(WorkflowError):
    status_code = 403


class Conflict(WorkflowError):
    status_code = 409


class ValidationError(WorkflowError):
    status_code = 400


class Internal(WorkflowError):
    status_code = 500


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
