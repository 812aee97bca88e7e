"""Custom exception classes

Every exception carries the HTTP status it is rendered with and any extra
fields merged into the ``{ok: false, error: ...}`` envelope.
"""

from typing import Any, Dict, Optional


class LmeveException(Exception):
    """Base exception for the LMeve backend"""

    status_code = 500

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}
        if status_code is not None:
            self.status_code = status_code

    def to_response(self) -> Dict[str, Any]:
        """Render the error envelope"""
        body: Dict[str, Any] = {"ok": False, "error": self.message}
        for key, value in self.extra.items():
            body.setdefault(key, value)
        return body


class ValidationException(LmeveException):
    """Malformed or incomplete input"""
    status_code = 400


class AuthenticationException(LmeveException):
    """Bad credentials"""
    status_code = 401


class AccountDisabledException(LmeveException):
    """Account exists but is deactivated"""
    status_code = 403


class DatabaseException(LmeveException):
    """Database connection or statement errors"""
    status_code = 200


class ExternalAPIException(LmeveException):
    """Upstream SSO/ESI errors"""
    status_code = 200


class StorageException(LmeveException):
    """Settings or cache file errors"""
    status_code = 500
