"""Status definitions and exceptions for BudgetTracker.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., ServiceUnavailableException) for error handling in services
"""
import enum
import logging
from typing import Dict


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Config status
    ConfigNotFound = enum.auto()
    ConfigInvalid = enum.auto()

    # Authentication status
    CredsInvalid = enum.auto()
    NotAuthenticated = enum.auto()
    PasswordInvalid = enum.auto()

    # Remote store status
    RemoteUrlNotConfigured = enum.auto()
    ServiceUnavailable = enum.auto()
    RemoteRequestFailed = enum.auto()

    # Local mirror status
    CacheInvalid = enum.auto()

    # Input validation status
    AmountInvalid = enum.auto()
    TransactionInvalid = enum.auto()
    CategoryInvalid = enum.auto()
    CategoryInUse = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.ConfigNotFound: 'Could not find the budget config.',
    Status.ConfigInvalid: 'The budget config seems to be incomplete, or contains invalid values.',

    Status.CredsInvalid: 'Could not read the saved session. Please sign in again.',
    Status.NotAuthenticated: 'Authentication error. Try signing in again.',
    Status.PasswordInvalid: 'Incorrect password.',

    Status.RemoteUrlNotConfigured: 'Could not find a valid backend url. Have you set up the remote section in the settings?',
    Status.ServiceUnavailable: 'The backend is unavailable. Changes will sync when back online.',
    Status.RemoteRequestFailed: 'The backend rejected the request.',

    Status.CacheInvalid: 'The local data is invalid. Try fetching the data from the backend again.',

    Status.AmountInvalid: 'The amount is not a valid number.',
    Status.TransactionInvalid: 'The transaction is incomplete, or contains invalid values.',
    Status.CategoryInvalid: 'The category is incomplete, or contains invalid values.',
    Status.CategoryInUse: 'The category is still in use and cannot be deleted.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in BudgetTracker.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)

        from ..core.signals import signals
        signals.error.emit(message or self.status_message)


class ConfigNotFoundException(BaseStatusException):
    """Exception raised when the budget configuration file cannot be found."""
    status = Status.ConfigNotFound


class ConfigInvalidException(BaseStatusException):
    """Exception raised when the budget configuration is invalid or malformed."""
    status = Status.ConfigInvalid


class CredsInvalidException(BaseStatusException):
    """Exception raised when the stored session is invalid or corrupt."""
    status = Status.CredsInvalid


class AuthenticationExceptionException(BaseStatusException):
    """Exception raised when the user is not authenticated with the backend."""
    status = Status.NotAuthenticated


class PasswordInvalidException(BaseStatusException):
    """Exception raised when a password re-check fails."""
    status = Status.PasswordInvalid


class RemoteUrlNotConfiguredException(BaseStatusException):
    """Exception raised when the backend url or key is not configured in settings."""
    status = Status.RemoteUrlNotConfigured


class ServiceUnavailableException(BaseStatusException):
    """Exception raised when the backend cannot be reached."""
    status = Status.ServiceUnavailable


class RemoteRequestException(BaseStatusException):
    """Exception raised when the backend answers with a client error."""
    status = Status.RemoteRequestFailed


class CacheInvalidException(BaseStatusException):
    """Exception raised when the local mirror is invalid or corrupted."""
    status = Status.CacheInvalid


class AmountInvalidException(BaseStatusException):
    """Exception raised when an amount cannot be read as a number."""
    status = Status.AmountInvalid


class TransactionInvalidException(BaseStatusException):
    """Exception raised when transaction input fails validation."""
    status = Status.TransactionInvalid


class CategoryInvalidException(BaseStatusException):
    """Exception raised when category input fails validation."""
    status = Status.CategoryInvalid


class CategoryInUseException(BaseStatusException):
    """Exception raised when deleting a category that has children or transactions."""
    status = Status.CategoryInUse
