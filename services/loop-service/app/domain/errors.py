"""Exceptions raised by the loop domain and translated at the HTTP boundary."""

from __future__ import annotations


class PermissionDeniedError(PermissionError):
    """The caller is not allowed to perform the requested operation."""

    code = "permission-denied"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(LookupError):
    """A referenced account or document does not exist."""


class AccountValidationError(ValueError):
    """The identity store rejected account fields (bad email, duplicate phone, ...)."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def as_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class InvalidTokenError(ValueError):
    """A verification token was malformed, expired, or no longer matches the account."""
