"""Domain records for transactions, categories, budget settings and accounts.

Every record converts to and from a JSON-friendly dict whose keys match the columns
of the remote tables. The same dicts are stored in the local mirror.
"""
import dataclasses
import datetime
import enum
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from ..status import status

PRESET_COLORS = [
    '#ef4444', '#f97316', '#f59e0b', '#eab308', '#84cc16', '#22c55e',
    '#10b981', '#14b8a6', '#06b6d4', '#0ea5e9', '#3b82f6', '#6366f1',
    '#8b5cf6', '#a855f7', '#d946ef', '#ec4899', '#f43f5e', '#6b7280',
]

PRESET_ICONS = [
    'utensils', 'car', 'shopping-bag', 'film', 'zap', 'heart',
    'dollar-sign', 'more-horizontal', 'home', 'briefcase', 'plane',
    'coffee', 'book', 'music', 'camera', 'gamepad-2', 'palette', 'wrench',
]

DEFAULT_COLOR = '#3b82f6'
DEFAULT_ICON = 'folder'


class Table(enum.StrEnum):
    """Remote table names, also used as local mirror keys."""
    Transactions = 'transactions'
    Categories = 'categories'
    BudgetSettings = 'budget_settings'
    Accounts = 'accounts'


class TransactionType(enum.StrEnum):
    Income = 'income'
    Expense = 'expense'


class AccountKind(enum.StrEnum):
    Savings = 'savings'
    Checking = 'checking'
    CreditCard = 'credit card'
    Loan = 'loan'
    Bills = 'bills'
    Other = 'other'


def now_str() -> str:
    """Return current UTC date and time as an ISO 8601 string."""
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def new_id() -> str:
    """Return a random identifier for a locally created record."""
    return str(uuid.uuid4())


def to_decimal(value: Any) -> Decimal:
    """Convert a wire or user value to a Decimal.

    Raises:
        ValueError: If the value cannot be read as a finite number.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValueError(f'Not a number: {value!r}')
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as ex:
            raise ValueError(f'Not a number: {value!r}') from ex
    if not result.is_finite():
        raise ValueError(f'Not a finite number: {value!r}')
    return result


def parse_amount(value: Any) -> Decimal:
    """Parse a transaction amount, which must be a positive number.

    Raises:
        status.TransactionInvalidException: If the value is not a positive number.
    """
    try:
        amount = to_decimal(value)
    except ValueError as ex:
        raise status.TransactionInvalidException(f'Invalid amount "{value}".') from ex
    if amount <= 0:
        raise status.TransactionInvalidException(f'Amount must be positive, got "{value}".')
    return amount


@dataclass
class Transaction:
    amount: Decimal
    description: str
    transaction_type: TransactionType
    category_id: Optional[str] = None
    transaction_date: str = field(default_factory=now_str)
    id: str = field(default_factory=new_id)
    synced: bool = False

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'amount': str(self.amount),
            'description': self.description,
            'category_id': self.category_id,
            'transaction_type': self.transaction_type.value,
            'transaction_date': self.transaction_date,
            'synced': self.synced,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Transaction':
        try:
            return cls(
                id=str(record['id']),
                amount=to_decimal(record['amount']),
                description=record.get('description') or '',
                category_id=record.get('category_id') or None,
                transaction_type=TransactionType(record['transaction_type']),
                transaction_date=record.get('transaction_date') or now_str(),
                synced=bool(record.get('synced', False)),
            )
        except (KeyError, ValueError) as ex:
            raise status.TransactionInvalidException(f'Malformed transaction record: {record}') from ex

    def replace(self, **changes: Any) -> 'Transaction':
        return dataclasses.replace(self, **changes)


@dataclass
class Category:
    name: str
    color: str = DEFAULT_COLOR
    icon: str = DEFAULT_ICON
    parent_id: Optional[str] = None
    id: str = field(default_factory=new_id)

    @property
    def is_root(self) -> bool:
        return not self.parent_id

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'color': self.color,
            'icon': self.icon,
            'parent_id': self.parent_id,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Category':
        try:
            return cls(
                id=str(record['id']),
                name=record['name'],
                color=record.get('color') or DEFAULT_COLOR,
                icon=record.get('icon') or DEFAULT_ICON,
                parent_id=record.get('parent_id') or None,
            )
        except KeyError as ex:
            raise status.CategoryInvalidException(f'Malformed category record: {record}') from ex


@dataclass
class BudgetSettings:
    """Starting amount plus the balance derived from it.

    ``current_balance`` is never authoritative: it is recomputed from the transaction
    list by :func:`BudgetTracker.core.balance.calculate_balance`.
    """
    starting_amount: Decimal = Decimal('0')
    current_balance: Decimal = Decimal('0')
    updated_at: str = field(default_factory=now_str)
    id: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'starting_amount': str(self.starting_amount),
            'current_balance': str(self.current_balance),
            'updated_at': self.updated_at,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'BudgetSettings':
        return cls(
            id=record.get('id'),
            starting_amount=to_decimal(record.get('starting_amount') or 0),
            current_balance=to_decimal(record.get('current_balance') or 0),
            updated_at=record.get('updated_at') or now_str(),
        )

    def replace(self, **changes: Any) -> 'BudgetSettings':
        return dataclasses.replace(self, **changes)


@dataclass
class Account:
    label: str
    account_number: str
    kind: AccountKind = AccountKind.Other
    id: str = field(default_factory=new_id)

    def to_record(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'label': self.label,
            'account_number': self.account_number,
            'category': self.kind.value,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Account':
        kind = record.get('category') or AccountKind.Other.value
        try:
            kind = AccountKind(kind)
        except ValueError:
            kind = AccountKind.Other
        return cls(
            id=str(record['id']),
            label=record.get('label') or '',
            account_number=str(record.get('account_number') or ''),
            kind=kind,
        )


def from_records(cls: Any, records: Iterable[Dict[str, Any]]) -> List[Any]:
    """Convert backend rows with ``cls.from_record``, skipping malformed rows.

    A single bad row must not hide the rest of a table, so rows that fail to convert
    are logged and left out.
    """
    items: List[Any] = []
    for record in records or []:
        try:
            items.append(cls.from_record(record))
        except (status.BaseStatusException, KeyError, TypeError, ValueError) as ex:
            logging.warning(f'Skipping malformed {cls.__name__} row: {ex}')
    return items
