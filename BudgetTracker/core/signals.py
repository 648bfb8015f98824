"""Application-wide Qt signals for BudgetTracker.

This module provides:
    - Signals: custom Qt signals for configuration changes, the data fetch lifecycle,
      entity changes (transactions, categories, budget, accounts), connectivity and
      sync events, and user-facing notifications.
"""
import logging

from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for application config, data, and sync events."""
    authenticationRequested = QtCore.Signal()

    configSectionChanged = QtCore.Signal(str)  # Section
    metadataChanged = QtCore.Signal(str, object)

    dataAboutToBeFetched = QtCore.Signal()
    dataFetched = QtCore.Signal()

    transactionsChanged = QtCore.Signal(list)
    categoriesChanged = QtCore.Signal(list)
    budgetChanged = QtCore.Signal(object)
    accountsChanged = QtCore.Signal(list)
    accountsLockChanged = QtCore.Signal(bool)

    onlineChanged = QtCore.Signal(bool)
    syncFinished = QtCore.Signal(object)  # Dict[id, (success, message)]

    showLogs = QtCore.Signal()

    notification = QtCore.Signal(str)
    error = QtCore.Signal(str)

    def __init__(self):
        super().__init__()
        self._connect_signals()

    def _connect_signals(self):
        self.notification.connect(lambda msg: logging.info(f'Notification: {msg}'))


signals = Signals()
