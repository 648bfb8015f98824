"""Offline queue for transactions, categories and the starting amount.

Transactions created while offline stay in the local mirror with ``synced=False``.
Categories created or edited while offline are listed as pending by id. Deleted
transactions and categories are kept as tombstones, and a starting amount that did
not reach the backend is flagged. A sweep pushes everything to the backend in an
order the foreign keys accept:

- pending categories are upserted by id
- pending transactions are upserted by id with ``synced=True``, which makes each
  retry idempotent
- transaction tombstones become remote deletes, then category tombstones
- a flagged starting amount is written to the budget settings row

Each item is sent independently. A failed item is logged and stays queued for the next
sweep. There is no backoff and no retry cap. Items already synced are never re-sent.
"""
import logging
from typing import Dict, List, Optional, Tuple

from PySide6 import QtCore

from .balance import pending
from .database import database
from .models import BudgetSettings, Category, Table, Transaction
from .remote import REMOTE_ERRORS, remote

#: Result key of the budget settings row in a sweep result.
SETTINGS_KEY = Table.BudgetSettings.value

Results = Dict[str, Tuple[bool, str]]


class SyncAPI(QtCore.QObject):
    """Push pending changes and deletions to the backend.

    Signals:
        sweepFinished (dict): Emits Dict[id, (success, message)] after every sweep.
    """
    sweepFinished = QtCore.Signal(object)

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._running: bool = False

    def pending_count(self) -> int:
        """Number of changes and deletions waiting to be pushed."""
        return (
                len(pending(database.load_transactions()))
                + len(database.load_tombstones())
                + len(database.load_pending_categories())
                + len(database.load_category_tombstones())
                + int(database.settings_pending())
        )

    def _push_categories(self, ids: List[str], categories: List[Category], results: Results) -> List[str]:
        by_id = {c.id: c for c in categories}
        remaining: List[str] = []
        for _id in ids:
            category = by_id.get(_id)
            if category is None:
                continue
            try:
                remote.upsert(Table.Categories.value, category.to_record())
            except REMOTE_ERRORS as ex:
                logging.warning(f'Failed to sync category {_id}: {ex}')
                results[_id] = (False, str(ex))
                remaining.append(_id)
                continue
            results[_id] = (True, 'Synced')
        return remaining

    def _push_transactions(self, transactions: List[Transaction], results: Results) -> List[Transaction]:
        out: List[Transaction] = []
        for t in transactions:
            if t.synced:
                out.append(t)
                continue

            synced = t.replace(synced=True)
            try:
                remote.upsert(Table.Transactions.value, synced.to_record())
            except REMOTE_ERRORS as ex:
                logging.warning(f'Failed to sync transaction {t.id}: {ex}')
                results[t.id] = (False, str(ex))
                out.append(t)
                continue

            results[t.id] = (True, 'Synced')
            out.append(synced)
        return out

    def _push_deletions(self, table: Table, ids: List[str], results: Results) -> List[str]:
        remaining: List[str] = []
        for _id in ids:
            try:
                remote.delete(table.value, {'id': _id})
            except REMOTE_ERRORS as ex:
                logging.warning(f'Failed to delete {table.value} row {_id} remotely: {ex}')
                results[_id] = (False, str(ex))
                remaining.append(_id)
                continue
            results[_id] = (True, 'Deleted')
        return remaining

    def push_settings(self, settings: BudgetSettings) -> BudgetSettings:
        """Write the starting amount to the backend.

        When the settings row id is not known yet the backend row is looked up first,
        and created when the backend has none.

        Returns:
            BudgetSettings: The settings with the backend row id.

        Raises:
            The errors in ``REMOTE_ERRORS`` when the backend write fails.
        """
        values = {'starting_amount': str(settings.starting_amount)}
        if not settings.id:
            row = remote.select(Table.BudgetSettings.value, single=True)
            if row:
                settings = settings.replace(id=str(row['id']))

        if settings.id:
            remote.update(Table.BudgetSettings.value, values, {'id': settings.id})
        else:
            record = {k: v for k, v in settings.to_record().items() if v is not None}
            row = remote.insert(Table.BudgetSettings.value, record)
            if row and row.get('id'):
                settings = settings.replace(id=str(row['id']))
        return settings

    def _push_pending_settings(self, results: Results) -> None:
        settings = database.load_settings()
        if settings is None:
            database.set_settings_pending(False)
            return
        try:
            settings = self.push_settings(settings)
        except REMOTE_ERRORS as ex:
            logging.warning(f'Failed to sync the starting amount: {ex}')
            results[SETTINGS_KEY] = (False, str(ex))
            return
        database.save_settings(settings)
        database.set_settings_pending(False)
        results[SETTINGS_KEY] = (True, 'Synced')

    @QtCore.Slot()
    def sweep(self) -> Results:
        """Push every pending change and deletion once.

        Returns:
            Dict[str, Tuple[bool, str]]: Result per record id. The budget settings row
            is reported under ``SETTINGS_KEY``.
        """
        if self._running:
            logging.debug('Sync sweep already running, skipping.')
            return {}

        self._running = True
        results: Results = {}
        try:
            if not self.pending_count():
                logging.debug('Nothing to sync.')
                return results

            transactions = database.load_transactions()
            tombstones = database.load_tombstones()
            pending_categories = database.load_pending_categories()
            category_tombstones = database.load_category_tombstones()
            logging.info(
                f'Syncing {len(pending_categories)} pending categor(ies), '
                f'{len(pending(transactions))} pending transaction(s) '
                f'and {len(tombstones) + len(category_tombstones)} deletion(s).'
            )

            if pending_categories:
                remaining = self._push_categories(pending_categories, database.load_categories(), results)
                database.save_pending_categories(remaining)

            database.save_transactions(self._push_transactions(transactions, results))

            if tombstones:
                database.save_tombstones(self._push_deletions(Table.Transactions, tombstones, results))
            if category_tombstones:
                database.save_category_tombstones(
                    self._push_deletions(Table.Categories, category_tombstones, results)
                )

            if database.settings_pending():
                self._push_pending_settings(results)
        finally:
            self._running = False
            self._finish(results)

        return results

    def _finish(self, results: Results) -> None:
        from .signals import signals
        if results:
            ok = sum(1 for success, _ in results.values() if success)
            if ok == len(results):
                signals.notification.emit('Data synced successfully!')
            else:
                signals.notification.emit(f'Synced {ok} of {len(results)} pending change(s).')
        signals.syncFinished.emit(results)
        self.sweepFinished.emit(results)


sync = SyncAPI()
