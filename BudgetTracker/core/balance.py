"""Balance recalculation.

The displayed balance is always ``starting_amount + Σ signed amounts``. It is derived
from the full transaction list on every change and never kept as a running counter.
"""
from decimal import Decimal
from typing import Iterable, List

from .models import BudgetSettings, Transaction, TransactionType, now_str


def signed_amount(transaction: Transaction) -> Decimal:
    """Income counts positive, expense counts negative."""
    if transaction.transaction_type == TransactionType.Income:
        return transaction.amount
    return -transaction.amount


def calculate_balance(transactions: Iterable[Transaction], starting_amount: Decimal) -> Decimal:
    """Return the starting amount plus the signed sum of all transactions.

    Args:
        transactions: Transactions to apply.
        starting_amount: Balance before any recorded transaction.

    Returns:
        Decimal: The derived balance.
    """
    return sum((signed_amount(t) for t in transactions), Decimal(starting_amount))


def recalculate(settings: BudgetSettings, transactions: Iterable[Transaction]) -> BudgetSettings:
    """Return a copy of settings with the balance re-derived and the timestamp refreshed."""
    return settings.replace(
        current_balance=calculate_balance(transactions, settings.starting_amount),
        updated_at=now_str(),
    )


def pending(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Transactions not yet durably written to the remote store."""
    return [t for t in transactions if not t.synced]


def merge_pending(
        remote_transactions: Iterable[Transaction],
        local_transactions: Iterable[Transaction],
        tombstones: Iterable[str]
) -> List[Transaction]:
    """Overlay local pending changes on a fresh remote read.

    Remote rows deleted locally (tombstoned) are dropped. A local unsynced transaction
    replaces its remote copy, or is appended when the backend does not have it yet.
    The result is the list every balance and history view derives from.
    """
    tombstones = set(tombstones)
    local_pending = {t.id: t for t in pending(local_transactions)}

    merged = [local_pending.pop(t.id, t) for t in remote_transactions if t.id not in tombstones]
    merged.extend(local_pending.values())
    return merged
