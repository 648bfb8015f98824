"""Dashboard controller: balance, transactions and the offline workflow.

:class:`DashboardAPI` owns the in-memory budget state (budget settings, transactions
and categories). Every change is written to the local mirror first and pushed to the
backend when online. Remote failures never escape: they are logged, the local state
is kept and a notification is emitted.

The balance is re-derived from the transaction list after every load and every
change using :func:`BudgetTracker.core.balance.calculate_balance`.
"""
import datetime
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from PySide6 import QtCore

from . import balance
from .categories import categories as categories_api
from .connectivity import connectivity
from .database import database
from .models import (
    BudgetSettings,
    Category,
    Table,
    Transaction,
    TransactionType,
    from_records,
    now_str,
    parse_amount,
    to_decimal,
)
from .remote import REMOTE_ERRORS, Subscription, remote
from .signals import signals
from .sync import sync
from ..status import status


def _parse_type(value: Any) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError as ex:
        raise status.TransactionInvalidException(
            f'Transaction type must be "income" or "expense", got "{value}".'
        ) from ex


def _parse_date(value: Any) -> str:
    """Return an ISO 8601 UTC timestamp for a date, datetime or ISO string."""
    if value is None or value == '':
        return now_str()
    if isinstance(value, datetime.datetime):
        dt = value
    elif isinstance(value, datetime.date):
        dt = datetime.datetime.combine(value, datetime.time())
    else:
        try:
            dt = datetime.datetime.fromisoformat(str(value).strip())
        except ValueError as ex:
            raise status.TransactionInvalidException(f'Invalid transaction date "{value}".') from ex
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt.astimezone(datetime.timezone.utc).isoformat()


class DashboardAPI(QtCore.QObject):
    """Controller for the budget overview and the transaction list."""

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent=parent)
        self.settings: BudgetSettings = BudgetSettings()
        self.transactions: List[Transaction] = []
        self.categories: List[Category] = []
        self._subscription: Optional[Subscription] = None

        self._connect_signals()

    def _connect_signals(self) -> None:
        connectivity.wentOnline.connect(self.on_went_online)
        connectivity.onlineChanged.connect(self.on_online_changed)
        signals.categoriesChanged.connect(self._set_categories)

    @QtCore.Slot(list)
    def _set_categories(self, categories: List[Category]) -> None:
        self.categories = list(categories)

    @property
    def balance(self) -> Decimal:
        return self.settings.current_balance

    @property
    def is_negative(self) -> bool:
        return self.balance < 0

    @property
    def pending_count(self) -> int:
        return len(balance.pending(self.transactions))

    def clear(self) -> None:
        """Forget the in-memory state and stop listening for remote changes."""
        if self._subscription is not None:
            self._subscription.stop()
            self._subscription = None
        self.settings = BudgetSettings()
        self.transactions = []
        self.categories = []
        self._emit_all()

    def load_local(self) -> None:
        """Load the last mirrored state without touching the backend."""
        self.settings = database.load_settings() or BudgetSettings()
        self.transactions = self._sorted(database.load_transactions())
        self.categories = sorted(database.load_categories(), key=lambda c: c.name.lower())
        self._recalculate(mirror=False)
        self._emit_all()

    @staticmethod
    def _sorted(transactions: List[Transaction]) -> List[Transaction]:
        return sorted(transactions, key=lambda t: t.transaction_date, reverse=True)

    def _recalculate(self, mirror: bool = True) -> None:
        self.settings = balance.recalculate(self.settings, self.transactions)
        if mirror:
            database.save_settings(self.settings)

    def _emit_all(self) -> None:
        signals.budgetChanged.emit(self.settings)
        signals.transactionsChanged.emit(self.transactions)
        signals.categoriesChanged.emit(self.categories)

    def _merge_local(self, remote_transactions: List[Transaction]) -> List[Transaction]:
        """Keep local pending changes on top of a fresh remote read."""
        return self._sorted(balance.merge_pending(
            remote_transactions, self.transactions, database.load_tombstones()
        ))

    @staticmethod
    def _merge_settings(settings_record: Optional[Dict[str, Any]]) -> BudgetSettings:
        local = database.load_settings()
        parsed = from_records(BudgetSettings, [settings_record] if settings_record else [])
        if not parsed:
            return local or BudgetSettings()

        settings = parsed[0]
        if local is not None and database.settings_pending():
            # the starting amount changed locally and has not reached the backend yet
            settings = settings.replace(starting_amount=local.starting_amount)
        return settings

    def fetch_data(self) -> bool:
        """Load budget settings, transactions and categories.

        Reads the backend when online and mirrors the result. Falls back to the local
        mirror when offline or when the backend read fails.

        Returns:
            bool: True if the data came from the backend.
        """
        signals.dataAboutToBeFetched.emit()
        from_remote = False

        if connectivity.is_online:
            try:
                settings_record = remote.select(Table.BudgetSettings.value, single=True)
                transaction_records = remote.select(
                    Table.Transactions.value, order='transaction_date', descending=True
                )
                category_records = remote.select(Table.Categories.value, order='name')
            except REMOTE_ERRORS as ex:
                logging.warning(f'Remote fetch failed, loading the local mirror: {ex}')
            else:
                self.settings = self._merge_settings(settings_record)
                server_balance = self.settings.current_balance
                self.transactions = self._merge_local(from_records(Transaction, transaction_records))
                self.categories = categories_api.merge_remote(from_records(Category, category_records))

                self._recalculate(mirror=False)
                if settings_record and self.settings.current_balance != server_balance:
                    logging.warning(
                        f'Server balance {server_balance} differs from the derived balance '
                        f'{self.settings.current_balance}.'
                    )

                database.save_settings(self.settings)
                database.save_transactions(self.transactions)
                database.save_categories(self.categories)
                database.stamp()
                from_remote = True

        if not from_remote:
            self.settings = database.load_settings() or self.settings
            self.transactions = self._sorted(database.load_transactions())
            self.categories = sorted(database.load_categories(), key=lambda c: c.name.lower())
            self._recalculate(mirror=False)

        self._emit_all()
        signals.dataFetched.emit()
        return from_remote

    def _validate_category(self, category_id: Optional[str]) -> Optional[str]:
        if not category_id:
            return None
        if self.categories and category_id not in {c.id for c in self.categories}:
            raise status.TransactionInvalidException(f'Unknown category "{category_id}".')
        return category_id

    def _push(self, transaction: Transaction, insert: bool) -> Transaction:
        """Write a transaction to the backend and return it marked synced on success."""
        if not connectivity.is_online:
            return transaction

        record = transaction.replace(synced=True).to_record()
        try:
            if insert:
                remote.insert(Table.Transactions.value, record)
            else:
                remote.upsert(Table.Transactions.value, record)
        except REMOTE_ERRORS as ex:
            logging.warning(f'Failed to save transaction {transaction.id} remotely: {ex}')
            signals.notification.emit('Failed to save transaction to database. It will sync when back online.')
            return transaction
        return transaction.replace(synced=True)

    def _replace(self, transaction: Transaction) -> None:
        self.transactions = [transaction if t.id == transaction.id else t for t in self.transactions]
        database.save_transactions(self.transactions)

    def add_transaction(
            self,
            amount: Any,
            description: str,
            transaction_type: Any,
            category_id: Optional[str] = None,
            transaction_date: Any = None
    ) -> Transaction:
        """Record a new transaction.

        The transaction is created unsynced, mirrored and applied to the balance at
        once. When online it is inserted remotely and marked synced on success.

        Args:
            amount: Positive amount.
            description: Free text.
            transaction_type: "income" or "expense".
            category_id: Optional category id.
            transaction_date: Optional date, datetime or ISO string. Defaults to now.

        Returns:
            Transaction: The recorded transaction.

        Raises:
            status.TransactionInvalidException: If the input fails validation.
        """
        transaction = Transaction(
            amount=parse_amount(amount),
            description=(description or '').strip(),
            transaction_type=_parse_type(transaction_type),
            category_id=self._validate_category(category_id),
            transaction_date=_parse_date(transaction_date),
        )

        self.transactions = [transaction] + self.transactions
        database.save_transactions(self.transactions)
        self._recalculate()
        signals.transactionsChanged.emit(self.transactions)
        signals.budgetChanged.emit(self.settings)

        pushed = self._push(transaction, insert=True)
        if pushed.synced:
            self._replace(pushed)
            signals.transactionsChanged.emit(self.transactions)

        signals.notification.emit('Transaction added!')
        return pushed

    def get_transaction(self, transaction_id: str) -> Transaction:
        for t in self.transactions:
            if t.id == transaction_id:
                return t
        raise status.TransactionInvalidException(f'Transaction "{transaction_id}" not found.')

    def update_transaction(self, transaction_id: str, **changes: Any) -> Transaction:
        """Edit a transaction.

        Accepted keyword arguments are amount, description, transaction_type,
        category_id and transaction_date.

        Raises:
            status.TransactionInvalidException: If the id is unknown or the input fails validation.
        """
        transaction = self.get_transaction(transaction_id)

        parsers = {
            'amount': parse_amount,
            'description': lambda v: (v or '').strip(),
            'transaction_type': _parse_type,
            'category_id': self._validate_category,
            'transaction_date': _parse_date,
        }
        unknown = set(changes) - set(parsers)
        if unknown:
            raise status.TransactionInvalidException(f'Cannot edit field(s): {sorted(unknown)}')

        values = {k: parsers[k](v) for k, v in changes.items()}
        transaction = transaction.replace(synced=False, **values)

        self._replace(transaction)
        self.transactions = self._sorted(self.transactions)
        self._recalculate()

        pushed = self._push(transaction, insert=False)
        if pushed.synced:
            self._replace(pushed)

        signals.transactionsChanged.emit(self.transactions)
        signals.budgetChanged.emit(self.settings)
        return pushed

    def delete_transaction(self, transaction_id: str) -> None:
        """Remove a transaction.

        When the remote delete cannot be made the id is kept as a tombstone and sent
        on the next sync sweep.

        Raises:
            status.TransactionInvalidException: If the id is unknown.
        """
        transaction = self.get_transaction(transaction_id)
        self.transactions = [t for t in self.transactions if t.id != transaction.id]
        database.save_transactions(self.transactions)
        self._recalculate()

        deleted = False
        if connectivity.is_online:
            try:
                remote.delete(Table.Transactions.value, {'id': transaction.id})
                deleted = True
            except REMOTE_ERRORS as ex:
                logging.warning(f'Failed to delete transaction {transaction.id} remotely: {ex}')
                signals.notification.emit('Failed to delete transaction from database. It will sync when back online.')

        if not deleted:
            database.save_tombstones(database.load_tombstones() + [transaction.id])

        signals.transactionsChanged.emit(self.transactions)
        signals.budgetChanged.emit(self.settings)

    def update_starting_amount(self, value: Any) -> BudgetSettings:
        """Set the starting amount and re-derive the balance.

        Raises:
            status.AmountInvalidException: If value is not a number.
        """
        try:
            amount = to_decimal(value)
        except ValueError as ex:
            raise status.AmountInvalidException(f'Invalid starting amount "{value}".') from ex

        self.settings = self.settings.replace(starting_amount=amount)
        self._recalculate()
        signals.budgetChanged.emit(self.settings)

        pushed = False
        if connectivity.is_online:
            try:
                self.settings = sync.push_settings(self.settings)
                pushed = True
            except REMOTE_ERRORS as ex:
                logging.warning(f'Failed to update starting amount remotely: {ex}')
                signals.notification.emit(
                    'Failed to save starting amount to database. It will sync when back online.'
                )

        database.save_settings(self.settings)
        database.set_settings_pending(not pushed)
        signals.notification.emit('Starting amount updated!')
        return self.settings

    def apply_remote_settings(self, rows: List[Dict[str, Any]]) -> None:
        """Apply a budget settings change reported by the backend."""
        parsed = from_records(BudgetSettings, rows[:1])
        if not parsed:
            return
        incoming = parsed[0]
        self.settings = self.settings.replace(
            id=incoming.id or self.settings.id,
            starting_amount=self.settings.starting_amount if database.settings_pending() else incoming.starting_amount,
        )
        self._recalculate()
        if self.settings.current_balance != incoming.current_balance:
            logging.debug(
                f'Remote balance {incoming.current_balance} differs from the derived '
                f'balance {self.settings.current_balance}.'
            )
        signals.budgetChanged.emit(self.settings)

    @QtCore.Slot(bool)
    def on_online_changed(self, online: bool) -> None:
        if online:
            if self._subscription is None:
                self._subscription = remote.subscribe(Table.BudgetSettings.value, self.apply_remote_settings)
            else:
                self._subscription.start()
        elif self._subscription is not None:
            self._subscription.stop()

    @QtCore.Slot()
    def on_went_online(self) -> Dict[str, Any]:
        """Push pending changes, then refresh from the backend."""
        results = sync.sweep()
        self.transactions = self._sorted(database.load_transactions())
        self.fetch_data()
        return results


dashboard = DashboardAPI()
