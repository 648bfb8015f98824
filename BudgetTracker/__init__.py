"""
BudgetTracker: personal budget tracker with an offline-first local mirror.

This package provides:

- :mod:`BudgetTracker.core` – The remote row store client, authentication, the local SQLite mirror, connectivity
  tracking, the offline sync queue and the dashboard, category and account controllers.
- :mod:`BudgetTracker.data` – Monthly history (:func:`BudgetTracker.data.data.get_monthly_history`) and currency
  formatting.
- :mod:`BudgetTracker.settings` – Settings management with schema validation and application paths.
- :mod:`BudgetTracker.status` – Status codes and the exceptions raised across the package.
- :mod:`BudgetTracker.log` – Logging setup with an in-memory log tank.

Use :func:`BudgetTracker.exec_` to run the command line interface.
"""

import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('BudgetTracker requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'BudgetTracker: personal budget tracker with offline sync.'

from .log import log

log.setup_logging()


def exec_() -> None:
    """Run the BudgetTracker command line and exit with its return code."""
    from . import cli
    sys.exit(cli.main(sys.argv[1:]))


if __name__ == '__main__':
    exec_()
