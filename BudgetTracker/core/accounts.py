"""Financial accounts with masked numbers.

Account numbers stay hidden until the signed-in user re-enters their password.
"""
import logging
from typing import List, Optional

from PySide6 import QtCore

from .auth import AuthExpiredError, auth_manager
from .connectivity import connectivity
from .database import database
from .models import Account, Table, from_records
from .remote import REMOTE_ERRORS, remote
from .signals import signals
from ..status import status

MASK_CHAR = '•'


def mask(number: str) -> str:
    """Replace every character of an account number."""
    return MASK_CHAR * len(number or '')


class AccountsAPI(QtCore.QObject):
    """Controller for the account list and its lock."""

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent=parent)
        self._locked: bool = True
        self.accounts: List[Account] = []

    @property
    def locked(self) -> bool:
        return self._locked

    def fetch_accounts(self) -> List[Account]:
        """Load the accounts from the backend, falling back to the local mirror."""
        if connectivity.is_online:
            try:
                records = remote.select(Table.Accounts.value, order='label')
            except REMOTE_ERRORS as ex:
                logging.warning(f'Failed to fetch accounts, using the local mirror: {ex}')
            else:
                self.accounts = from_records(Account, records)
                database.save_accounts(self.accounts)
                signals.accountsChanged.emit(self.accounts)
                return self.accounts

        self.accounts = database.load_accounts()
        signals.accountsChanged.emit(self.accounts)
        return self.accounts

    def display_number(self, account: Account) -> str:
        return mask(account.account_number) if self._locked else account.account_number

    def unlock(self, password: str) -> None:
        """Show account numbers after re-checking the password.

        Raises:
            status.PasswordInvalidException: If the password is empty or wrong.
            status.AuthenticationExceptionException: If nobody is signed in.
            status.ServiceUnavailableException: If the password cannot be checked.
        """
        if not (password or '').strip():
            raise status.PasswordInvalidException('Please enter your password.')

        try:
            ok = auth_manager.verify_password(password)
        except AuthExpiredError as ex:
            signals.authenticationRequested.emit()
            raise status.AuthenticationExceptionException('Sign in to view account numbers.') from ex

        if not ok:
            raise status.PasswordInvalidException

        self._set_locked(False)
        signals.notification.emit('Account numbers revealed')

    def lock(self) -> None:
        self._set_locked(True)

    def _set_locked(self, value: bool) -> None:
        if value == self._locked:
            return
        self._locked = value
        signals.accountsLockChanged.emit(value)


accounts = AccountsAPI()
