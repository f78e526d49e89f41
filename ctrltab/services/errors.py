from __future__ import annotations


class CtrlTabError(Exception):
    """Base for business-rule failures rendered as ``{"error": message}``."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CtrlTabError):
    status_code = 400


class AuthenticationError(CtrlTabError):
    status_code = 401


class AdminRequiredError(CtrlTabError):
    status_code = 403


class NotFoundError(CtrlTabError):
    status_code = 404


class AuthorizationError(NotFoundError):
    """Entity exists but belongs to another user; reported as not found."""


class ConflictError(CtrlTabError):
    status_code = 409


class InvariantViolation(CtrlTabError):
    status_code = 400
