"""Error types raised by the data form engine."""
from __future__ import annotations

from typing import Dict


class DataFormError(Exception):
    """Base class for user-displayable engine errors."""

    status_code = 400
    default_message = "Invalid request."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(DataFormError):
    """A missing or malformed value on direct submission or import."""

    default_message = "Validation failed."

    def __init__(self, message: str | None = None, errors: Dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.errors = dict(errors or {})


class DuplicateFieldError(ValidationError):
    default_message = "Field names must be unique."


class UnknownFieldError(ValidationError):
    default_message = "Field does not exist."


class UnsupportedFileError(ValidationError):
    default_message = "Please select a file (.xlsx, .xls or .csv)."


class LockedFieldError(DataFormError):
    """Attempt to remove a locked field or change its type or required flag."""

    default_message = "This field is locked and cannot be changed."


class EmptyInputError(DataFormError):
    default_message = "Excel file is empty or has no data"


class NotFoundOrForbidden(DataFormError):
    """Raised for ids that do not exist or belong to another owner."""

    status_code = 404
    default_message = "Not found."
