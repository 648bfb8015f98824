"""
Unit tests for BudgetTracker.core.models.

Run:
    python -m unittest tests.test_models
"""
import uuid
import unittest
from decimal import Decimal

from BudgetTracker.core.models import (
    Account,
    AccountKind,
    BudgetSettings,
    Category,
    DEFAULT_COLOR,
    DEFAULT_ICON,
    Transaction,
    TransactionType,
    parse_amount,
    to_decimal,
)
from BudgetTracker.status import status


class ParseAmountTests(unittest.TestCase):
    def test_accepts_positive_values(self):
        self.assertEqual(parse_amount('12.50'), Decimal('12.50'))
        self.assertEqual(parse_amount(' 3 '), Decimal('3'))
        self.assertEqual(parse_amount(7), Decimal('7'))
        self.assertEqual(parse_amount(Decimal('0.01')), Decimal('0.01'))

    def test_rejects_invalid_values(self):
        for value in ('', 'abc', None, '0', '-5', 'nan', 'inf', True):
            with self.subTest(value=value):
                with self.assertRaises(status.TransactionInvalidException):
                    parse_amount(value)

    def test_to_decimal_allows_zero_and_negative(self):
        self.assertEqual(to_decimal('0'), Decimal('0'))
        self.assertEqual(to_decimal('-20.5'), Decimal('-20.5'))
        with self.assertRaises(ValueError):
            to_decimal('twelve')


class TransactionRecordTests(unittest.TestCase):
    def test_defaults(self):
        t = Transaction(amount=Decimal('5'), description='Coffee', transaction_type=TransactionType.Expense)
        self.assertFalse(t.synced)
        self.assertIsNone(t.category_id)
        self.assertEqual(uuid.UUID(t.id).version, 4)
        self.assertTrue(t.transaction_date.endswith('+00:00'))

    def test_ids_are_unique(self):
        ids = {Transaction(Decimal('1'), '', TransactionType.Income).id for _ in range(100)}
        self.assertEqual(len(ids), 100)

    def test_record_uses_string_amounts(self):
        t = Transaction(amount=Decimal('0.10'), description='x', transaction_type=TransactionType.Income)
        record = t.to_record()
        self.assertEqual(record['amount'], '0.10')
        self.assertEqual(record['transaction_type'], 'income')
        self.assertEqual(Transaction.from_record(record), t)

    def test_from_record_accepts_numeric_amounts(self):
        t = Transaction.from_record({
            'id': 'a', 'amount': 12.5, 'transaction_type': 'expense', 'description': None,
        })
        self.assertEqual(t.amount, Decimal('12.5'))
        self.assertEqual(t.description, '')
        self.assertFalse(t.synced)

    def test_from_record_rejects_malformed(self):
        with self.assertRaises(status.TransactionInvalidException):
            Transaction.from_record({'id': 'a', 'amount': '1', 'transaction_type': 'transfer'})
        with self.assertRaises(status.TransactionInvalidException):
            Transaction.from_record({'amount': '1', 'transaction_type': 'income'})


class OtherRecordTests(unittest.TestCase):
    def test_category_defaults(self):
        c = Category.from_record({'id': 'c1', 'name': 'Food', 'color': None, 'icon': '', 'parent_id': None})
        self.assertEqual(c.color, DEFAULT_COLOR)
        self.assertEqual(c.icon, DEFAULT_ICON)
        self.assertTrue(c.is_root)
        self.assertFalse(Category(name='Snacks', parent_id='c1').is_root)

    def test_budget_settings_round_trip(self):
        s = BudgetSettings(starting_amount=Decimal('100.00'), current_balance=Decimal('-3.5'), id='s')
        self.assertEqual(BudgetSettings.from_record(s.to_record()), s)

    def test_account_kind(self):
        a = Account.from_record({'id': 1, 'label': 'Visa', 'account_number': 4111, 'category': 'credit card'})
        self.assertEqual(a.kind, AccountKind.CreditCard)
        self.assertEqual(a.account_number, '4111')
        self.assertEqual(a.to_record()['category'], 'credit card')

        unknown = Account.from_record({'id': 2, 'label': 'X', 'account_number': '1', 'category': 'crypto'})
        self.assertEqual(unknown.kind, AccountKind.Other)


if __name__ == '__main__':
    unittest.main()
