"""Monthly history API.

Groups transactions by calendar month (UTC) and walks the months in chronological
order, carrying a running balance seeded with the starting amount. Each month's ending
balance is derived with the same balance function as the dashboard. Transactions are
loaded into a pandas frame for date parsing, ordering and grouping. Totals are summed
as Decimals so that no amount goes through a float.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, List, Optional

import pandas as pd

from ..core.balance import calculate_balance, merge_pending
from ..core.models import BudgetSettings, Table, Transaction, TransactionType, from_records, to_decimal
from ..settings import lib
from ..settings import locale


@dataclass
class MonthlySummary:
    year: int
    month: int
    month_name: str
    transactions: List[Transaction] = field(default_factory=list)
    total_income: Decimal = Decimal('0')
    total_expenses: Decimal = Decimal('0')
    net_amount: Decimal = Decimal('0')
    ending_balance: Decimal = Decimal('0')

    @property
    def key(self) -> str:
        return f'{self.year:04d}-{self.month:02d}'


def _metadata(key: str, default: Any) -> Any:
    value = lib.settings.get_section('metadata').get(key)
    return default if value is None else value


def _conform_date_column(transactions: List[Transaction]) -> pd.DataFrame:
    """Build a frame of transactions with a parsed UTC 'date' column, newest first.

    Rows whose timestamp cannot be parsed are dropped.
    """
    df = pd.DataFrame({
        'transaction': transactions,
        'date': [t.transaction_date for t in transactions],
    })
    df['date'] = pd.to_datetime(df['date'], utc=True, format='ISO8601', errors='coerce')

    invalid = df['date'].isna()
    if invalid.any():
        ids = [t.id for t in df.loc[invalid, 'transaction']]
        logging.warning(f'Dropping {len(ids)} transaction(s) with unparsable dates: {ids}')
        df = df.loc[~invalid].copy()

    df['period'] = df['date'].dt.strftime('%Y-%m')
    return df.sort_values('date', ascending=False, kind='mergesort')


def monthly_history(
        transactions: Iterable[Transaction],
        starting_amount: Any = 0,
        _locale: Optional[str] = None
) -> List[MonthlySummary]:
    """Summarize transactions per month.

    Args:
        transactions: Transactions to group.
        starting_amount: Balance before the first month.
        _locale: Locale for month names. Defaults to the metadata locale.

    Returns:
        List[MonthlySummary]: Newest month first, transactions newest first within a month.
    """
    transactions = list(transactions)
    if not transactions:
        return []

    _locale = _locale or _metadata('locale', locale.DEFAULT_LOCALE)
    df = _conform_date_column(transactions)

    summaries: List[MonthlySummary] = []
    running = to_decimal(starting_amount)

    for period, group in df.groupby('period', sort=True):
        items: List[Transaction] = list(group['transaction'])
        income = sum((t.amount for t in items if t.transaction_type == TransactionType.Income), Decimal('0'))
        expenses = sum((t.amount for t in items if t.transaction_type == TransactionType.Expense), Decimal('0'))
        running = calculate_balance(items, running)

        year, month = (int(v) for v in period.split('-'))
        summaries.append(MonthlySummary(
            year=year,
            month=month,
            month_name=locale.format_month(year, month, _locale),
            transactions=items,
            total_income=income,
            total_expenses=expenses,
            net_amount=income - expenses,
            ending_balance=running,
        ))

    summaries.reverse()
    return summaries


def get_monthly_history() -> List[MonthlySummary]:
    """Load transactions and the starting amount, then summarize them per month.

    Reads the backend when online and falls back to the local mirror otherwise. Local
    changes that have not been synced yet are applied over the backend rows, so the
    newest month ends on the balance the dashboard shows.
    """
    from ..core.connectivity import connectivity
    from ..core.database import database
    from ..core.remote import REMOTE_ERRORS, remote

    local_settings = database.load_settings()
    transactions: Optional[List[Transaction]] = None
    settings: Optional[BudgetSettings] = None

    if connectivity.is_online:
        try:
            records = remote.select(Table.Transactions.value, order='transaction_date', descending=True)
            settings_record = remote.select(Table.BudgetSettings.value, single=True)
        except REMOTE_ERRORS as ex:
            logging.warning(f'Failed to load history from the backend, using the local mirror: {ex}')
        else:
            transactions = merge_pending(
                from_records(Transaction, records),
                database.load_transactions(),
                database.load_tombstones(),
            )
            parsed = from_records(BudgetSettings, [settings_record] if settings_record else [])
            settings = parsed[0] if parsed else local_settings
            if database.settings_pending() and local_settings is not None:
                settings = local_settings

    if transactions is None:
        transactions = database.load_transactions()
        settings = local_settings

    starting_amount = settings.starting_amount if settings else Decimal('0')
    return monthly_history(transactions, starting_amount)


def format_currency(amount: Any) -> str:
    """Format an amount with the configured currency symbol, e.g. 'Php1,234.50'."""
    return locale.format_currency(
        to_decimal(amount),
        _metadata('currency', ''),
        _metadata('locale', locale.DEFAULT_LOCALE),
    )
