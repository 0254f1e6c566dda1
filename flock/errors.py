"""
Service error taxonomy
Every operation either returns {'data': ...} or {'error': {message, code, status}}
"""
from typing import Any, Optional


class ServiceError(Exception):
    """Base class for errors that cross the API boundary as an error envelope"""

    code = 'UNKNOWN_ERROR'
    status = 500

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status:
            self.status = status

    def to_dict(self) -> dict:
        err = {'message': self.message, 'code': self.code}
        if self.status is not None:
            err['status'] = self.status
        return err


class ValidationError(ServiceError):
    code = 'VALIDATION_ERROR'
    status = 400


class AuthError(ServiceError):
    code = 'AUTH_ERROR'
    status = 401

    def __init__(self, message: str = 'Authentication failed', code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message, code, status)


class NotFoundError(ServiceError):
    code = 'NOT_FOUND'
    status = 404


class StorageError(ServiceError):
    code = 'STORAGE_ERROR'
    status = 502


class DbError(ServiceError):
    code = 'DB_ERROR'
    status = 500


def ok(data: Any) -> dict:
    return {'data': data}


def error_body(err: ServiceError) -> dict:
    return {'error': err.to_dict()}
