"""
Tests for the monthly history in BudgetTracker.data.data and the Babel formatters
in BudgetTracker.settings.locale.

Run:
    python -m unittest tests.test_history
"""
import unittest
from decimal import Decimal

from BudgetTracker.core.dashboard import dashboard
from BudgetTracker.core.database import database
from BudgetTracker.core.models import BudgetSettings, Table, TransactionType
from BudgetTracker.data import data
from BudgetTracker.settings import lib
from BudgetTracker.settings import locale
from tests.base import BaseRemoteTestCase, BaseTestCase, make_transaction

Income = TransactionType.Income
Expense = TransactionType.Expense


class MonthlyHistoryTests(BaseTestCase):
    def test_empty(self):
        self.assertEqual(data.monthly_history([], Decimal('100')), [])

    def test_grouping_and_running_balance(self):
        transactions = [
            make_transaction('500', Income, date='2024-01-05T08:00:00+00:00'),
            make_transaction('120.25', Expense, date='2024-01-20T08:00:00+00:00'),
            make_transaction('80', Expense, date='2024-03-02T08:00:00+00:00'),
            make_transaction('1000', Income, date='2024-02-29T23:59:59+00:00'),
        ]
        history = data.monthly_history(transactions, Decimal('100'), _locale='en_US')

        self.assertEqual([s.key for s in history], ['2024-03', '2024-02', '2024-01'])
        self.assertEqual([s.month_name for s in history], ['March 2024', 'February 2024', 'January 2024'])

        jan = history[2]
        self.assertEqual(jan.total_income, Decimal('500'))
        self.assertEqual(jan.total_expenses, Decimal('120.25'))
        self.assertEqual(jan.net_amount, Decimal('379.75'))
        self.assertEqual(jan.ending_balance, Decimal('479.75'))

        self.assertEqual(history[1].ending_balance, Decimal('1479.75'))
        self.assertEqual(history[0].ending_balance, Decimal('1399.75'))
        self.assertEqual(history[0].net_amount, Decimal('-80'))

    def test_months_are_utc(self):
        # 23:30 on Jan 31st at UTC-5 is already February in UTC
        t = make_transaction('10', Expense, date='2024-01-31T23:30:00-05:00')
        history = data.monthly_history([t], 0, _locale='en_US')
        self.assertEqual(history[0].key, '2024-02')

    def test_transactions_newest_first_within_month(self):
        a = make_transaction('1', date='2024-05-01T00:00:00+00:00')
        b = make_transaction('2', date='2024-05-20T00:00:00+00:00')
        c = make_transaction('3', date='2024-05-10T00:00:00+00:00')
        history = data.monthly_history([a, b, c], 0, _locale='en_US')
        self.assertEqual([t.id for t in history[0].transactions], [b.id, c.id, a.id])

    def test_same_timestamp_keeps_input_order(self):
        a = make_transaction('1', date='2024-05-01T00:00:00+00:00')
        b = make_transaction('2', date='2024-05-01T00:00:00+00:00')
        history = data.monthly_history([a, b], 0, _locale='en_US')
        self.assertEqual([t.id for t in history[0].transactions], [a.id, b.id])

    def test_mixed_timestamp_formats(self):
        transactions = [
            make_transaction('1', date='2024-06-01'),
            make_transaction('2', date='2024-06-02T10:00:00.123456+00:00'),
            make_transaction('3', date='2024-06-03T10:00:00Z'),
        ]
        history = data.monthly_history(transactions, 0, _locale='en_US')
        self.assertEqual(len(history), 1)
        self.assertEqual(len(history[0].transactions), 3)

    def test_unparsable_dates_are_dropped(self):
        good = make_transaction('10', Income, date='2024-01-01T00:00:00+00:00')
        bad = make_transaction('99', Income, date='someday')
        with self.assertLogs(level='WARNING'):
            history = data.monthly_history([good, bad], 0, _locale='en_US')
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].ending_balance, Decimal('10'))

    def test_default_locale_comes_from_metadata(self):
        lib.settings.block_signals(True)
        lib.settings['locale'] = 'de_DE'
        lib.settings.block_signals(False)
        history = data.monthly_history([make_transaction('1', date='2024-03-02T00:00:00+00:00')], 0)
        self.assertEqual(history[0].month_name, 'März 2024')


class FormatTests(BaseTestCase):
    def test_format_currency(self):
        self.assertEqual(data.format_currency(Decimal('1234.5')), 'Php1,234.50')
        self.assertEqual(data.format_currency('-12'), '-Php12.00')
        self.assertEqual(data.format_currency(0), 'Php0.00')

    def test_format_currency_without_symbol(self):
        self.assertEqual(locale.format_currency(Decimal('5'), '', 'en_US'), '$5.00')


class LocaleTests(unittest.TestCase):
    def test_currency_from_locale(self):
        self.assertEqual(locale.get_currency_from_locale('en_PH'), 'PHP')
        self.assertEqual(locale.get_currency_from_locale('de_DE'), 'EUR')
        self.assertEqual(locale.get_currency_from_locale('en'), 'USD')
        self.assertEqual(locale.get_currency_from_locale('xx_ZZ'), 'USD')

    def test_format_amount(self):
        self.assertEqual(locale.format_amount(Decimal('1234567.891'), 'en_US'), '1,234,567.89')
        self.assertEqual(locale.format_amount(Decimal('1234.5'), 'de_DE'), '1.234,50')

    def test_invalid_locale_falls_back(self):
        with self.assertLogs(level='WARNING'):
            self.assertEqual(locale.format_amount(Decimal('1'), 'not a locale'), '1.00')

    def test_format_month(self):
        self.assertEqual(locale.format_month(2024, 1, 'en_US'), 'January 2024')


class GetMonthlyHistoryTests(BaseRemoteTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.seed(Table.BudgetSettings, {'id': 's1', 'starting_amount': '50', 'current_balance': '60'})
        self.seed(Table.Transactions, make_transaction('10', Income, date='2024-01-01T00:00:00+00:00').to_record())

    def test_online_reads_backend(self):
        self.go_online()
        history = data.get_monthly_history()
        self.assertEqual(history[0].ending_balance, Decimal('60'))

    def test_offline_reads_mirror(self):
        database.save_settings(BudgetSettings(starting_amount=Decimal('100')))
        database.save_transactions([make_transaction('30', Expense, date='2024-02-01T00:00:00+00:00')])

        history = data.get_monthly_history()

        self.assertEqual(self.fake.calls, [])
        self.assertEqual(history[0].key, '2024-02')
        self.assertEqual(history[0].ending_balance, Decimal('70'))

    def test_backend_failure_reads_mirror(self):
        self.go_online()
        self.fake.fail = True
        database.save_transactions([])
        self.assertEqual(data.get_monthly_history(), [])

    def test_matches_dashboard_with_pending_transaction(self):
        self.go_online()
        self.go_offline()
        dashboard.add_transaction('10', 'Coffee', 'expense', transaction_date='2024-01-02T00:00:00+00:00')

        self.fake.fail = True
        self.go_online()
        self.fake.fail = False

        history = data.get_monthly_history()
        self.assertEqual(dashboard.pending_count, 1)
        self.assertEqual(history[0].ending_balance, dashboard.balance)
        self.assertEqual(history[0].ending_balance, Decimal('50'))
        self.assertEqual(len(history[0].transactions), 2)

    def test_deleted_transaction_is_left_out(self):
        self.go_online()
        t = dashboard.transactions[0]
        self.go_offline()
        dashboard.delete_transaction(t.id)

        self.fake.fail = True
        self.go_online()
        self.fake.fail = False

        self.assertEqual(data.get_monthly_history(), [])
        self.assertEqual(dashboard.balance, Decimal('50'))

    def test_malformed_backend_row_is_skipped(self):
        self.seed(Table.Transactions, {'id': 'x', 'amount': None, 'transaction_type': 'expense'})
        self.go_online()

        with self.assertLogs(level='WARNING'):
            history = data.get_monthly_history()
        self.assertEqual(history[0].ending_balance, Decimal('60'))
