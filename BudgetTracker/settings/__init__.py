"""
Settings package for BudgetTracker.

Modules:

- :mod:`BudgetTracker.settings.lib` – Config schema validation, application paths and the
  :class:`SettingsAPI` singleton used to read and persist budget.json.
"""
