"""
BudgetTracker data package.

- :mod:`BudgetTracker.data.data` – Monthly history built from the transaction list
  (:func:`BudgetTracker.data.data.monthly_history`,
  :func:`BudgetTracker.data.data.get_monthly_history`) and currency formatting driven by
  the settings metadata.
"""
