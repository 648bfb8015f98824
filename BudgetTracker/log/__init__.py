"""
Logging subsystem for BudgetTracker.

Modules:

- :mod:`BudgetTracker.log.log` – Root logger setup, Qt message bridge, and the in-memory
  log tank used for notification history.
"""
