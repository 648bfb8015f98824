"""
Tests for BudgetTracker.core.dashboard: fetch with mirror fallback, optimistic adds,
edits, deletes, the starting amount, and the sweep on reconnect.

Run:
    python -m unittest tests.test_dashboard
"""
from decimal import Decimal

from BudgetTracker.core.dashboard import dashboard
from BudgetTracker.core.database import database
from BudgetTracker.core.models import BudgetSettings, Category, Table, TransactionType
from BudgetTracker.core.signals import signals
from BudgetTracker.status import status
from tests.base import BaseRemoteTestCase, make_transaction

SETTINGS = {'id': 's1', 'starting_amount': '1000', 'current_balance': '1300', 'updated_at': '2024-01-01T00:00:00+00:00'}


class DashboardFetchTests(BaseRemoteTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.income = make_transaction('500', TransactionType.Income, date='2024-01-10T09:00:00+00:00')
        self.expense = make_transaction('200', TransactionType.Expense, date='2024-02-01T09:00:00+00:00')
        self.seed(Table.BudgetSettings, SETTINGS)
        self.seed(Table.Transactions, self.income.to_record(), self.expense.to_record())
        self.seed(Table.Categories, Category(name='Rent', id='c2').to_record(), Category(name='Food', id='c1').to_record())

    def test_fetch_online_mirrors_data(self):
        self.go_online()

        self.assertEqual(dashboard.balance, Decimal('1300'))
        self.assertEqual([t.id for t in dashboard.transactions], [self.expense.id, self.income.id])
        self.assertEqual([c.name for c in dashboard.categories], ['Food', 'Rent'])

        self.assertEqual(len(database.load_transactions()), 2)
        self.assertEqual(database.load_settings().current_balance, Decimal('1300'))
        self.assertIsNotNone(database.get_stamp())

    def test_fetch_offline_uses_mirror(self):
        self.go_online()
        self.go_offline()
        self.fake.tables[Table.Transactions.value] = []
        dashboard.clear()

        self.assertFalse(dashboard.fetch_data())
        self.assertEqual(len(dashboard.transactions), 2)
        self.assertEqual(dashboard.balance, Decimal('1300'))

    def test_fetch_failure_falls_back_to_mirror(self):
        self.go_online()
        self.fake.fail = True

        self.assertFalse(dashboard.fetch_data())
        self.assertEqual(len(dashboard.transactions), 2)
        self.assertEqual(dashboard.balance, Decimal('1300'))

    def test_balance_is_derived_not_trusted(self):
        self.fake.tables[Table.BudgetSettings.value][0]['current_balance'] = '5'
        with self.assertLogs(level='WARNING') as logs:
            self.go_online()
        self.assertEqual(dashboard.balance, Decimal('1300'))
        self.assertTrue(any('differs' in line for line in logs.output))

    def test_malformed_rows_do_not_break_fetch(self):
        self.seed(Table.Transactions, {'id': 'x', 'amount': None, 'transaction_type': 'expense'})
        self.seed(Table.Categories, {'id': 'nameless'})

        with self.assertLogs(level='WARNING'):
            self.go_online()

        self.assertEqual(len(dashboard.transactions), 2)
        self.assertEqual([c.name for c in dashboard.categories], ['Food', 'Rent'])
        self.assertEqual(dashboard.balance, Decimal('1300'))
        self.assertIsNotNone(database.get_stamp())

    def test_malformed_settings_row_keeps_mirrored_settings(self):
        self.go_online()
        self.fake.tables[Table.BudgetSettings.value][0]['starting_amount'] = 'lots'

        self.assertTrue(dashboard.fetch_data())
        self.assertEqual(dashboard.settings.starting_amount, Decimal('1000'))
        self.assertEqual(dashboard.balance, Decimal('1300'))

    def test_fetch_signals(self):
        about = self.collect(signals.dataAboutToBeFetched)
        fetched = self.collect(signals.dataFetched)
        budget = self.collect(signals.budgetChanged)

        dashboard.fetch_data()

        self.assertEqual(len(about), 1)
        self.assertEqual(len(fetched), 1)
        self.assertIsInstance(budget[-1][0], BudgetSettings)

    def test_remote_settings_change_is_applied(self):
        self.go_online()
        changed = dict(SETTINGS, starting_amount='2000', current_balance='2300')
        dashboard.apply_remote_settings([changed])
        self.assertEqual(dashboard.settings.starting_amount, Decimal('2000'))
        self.assertEqual(dashboard.balance, Decimal('2300'))

    def test_subscription_follows_connectivity(self):
        self.go_online()
        subscription = dashboard._subscription
        self.assertIsNotNone(subscription)
        self.assertTrue(subscription.is_active())

        subscription.poll()
        self.fake.tables[Table.BudgetSettings.value][0]['starting_amount'] = '0'
        subscription.poll()
        self.assertEqual(dashboard.balance, Decimal('300'))

        self.go_offline()
        self.assertFalse(subscription.is_active())


class DashboardEditTests(BaseRemoteTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.seed(Table.BudgetSettings, SETTINGS)
        self.seed(Table.Categories, Category(name='Food', id='c1').to_record())

    def test_add_online_is_synced(self):
        self.go_online()
        t = dashboard.add_transaction('12.50', ' Lunch ', 'expense', category_id='c1')

        self.assertTrue(t.synced)
        self.assertEqual(t.description, 'Lunch')
        self.assertEqual(dashboard.transactions[0].id, t.id)
        self.assertEqual(dashboard.balance, Decimal('987.50'))
        self.assertEqual(dashboard.pending_count, 0)

        inserted = self.fake.calls_of('insert', Table.Transactions.value)
        self.assertEqual(len(inserted), 1)
        self.assertTrue(inserted[0][2]['synced'])
        self.assertTrue(database.load_transactions()[0].synced)

    def test_add_offline_is_pending(self):
        self.go_online()
        self.go_offline()
        t = dashboard.add_transaction('100', 'Salary', 'income')

        self.assertFalse(t.synced)
        self.assertEqual(dashboard.balance, Decimal('1100'))
        self.assertEqual(dashboard.pending_count, 1)
        self.assertEqual(self.fake.calls_of('insert'), [])
        self.assertEqual(database.load_settings().current_balance, Decimal('1100'))

    def test_add_remote_failure_keeps_local_state(self):
        self.go_online()
        notes = self.collect(signals.notification)
        self.fake.fail = True

        t = dashboard.add_transaction('5', 'Snack', 'expense')

        self.assertFalse(t.synced)
        self.assertEqual(dashboard.balance, Decimal('995'))
        self.assertEqual(database.load_transactions()[0].id, t.id)
        self.assertTrue(any('Failed to save transaction' in n[0] for n in notes))

    def test_add_validation(self):
        cases = [
            ('0', 'x', 'expense', None),
            ('-1', 'x', 'expense', None),
            ('abc', 'x', 'expense', None),
            ('1', 'x', 'transfer', None),
        ]
        for amount, description, kind, category in cases:
            with self.subTest(amount=amount, kind=kind):
                with self.assertRaises(status.TransactionInvalidException):
                    dashboard.add_transaction(amount, description, kind, category_id=category)
        self.assertEqual(dashboard.transactions, [])

    def test_add_unknown_category(self):
        self.go_online()
        with self.assertRaises(status.TransactionInvalidException):
            dashboard.add_transaction('1', 'x', 'expense', category_id='missing')

    def test_add_with_date(self):
        t = dashboard.add_transaction('1', 'x', 'expense', transaction_date='2024-03-05')
        self.assertEqual(t.transaction_date, '2024-03-05T00:00:00+00:00')
        with self.assertRaises(status.TransactionInvalidException):
            dashboard.add_transaction('1', 'x', 'expense', transaction_date='yesterday')

    def test_reconnect_sweeps_and_refreshes(self):
        self.go_online()
        self.go_offline()
        a = dashboard.add_transaction('10', 'a', 'expense')
        b = dashboard.add_transaction('20', 'b', 'income')
        finished = self.collect(signals.syncFinished)

        self.go_online()

        self.assertEqual(set(finished[0][0]), {a.id, b.id})
        self.assertEqual(dashboard.pending_count, 0)
        self.assertEqual(len(self.fake.tables[Table.Transactions.value]), 2)
        self.assertEqual(dashboard.balance, Decimal('1010'))

    def test_reconnect_with_failures_keeps_pending(self):
        self.go_online()
        self.go_offline()
        dashboard.add_transaction('10', 'a', 'expense')
        self.fake.fail = True

        self.go_online()

        self.assertEqual(dashboard.pending_count, 1)
        self.assertEqual(dashboard.balance, Decimal('990'))

    def test_pending_survive_remote_fetch(self):
        self.go_online()
        self.go_offline()
        t = dashboard.add_transaction('10', 'a', 'expense')

        # a fetch while the sweep fails must not drop the local transaction
        self.fake.fail = True
        self.go_online()
        self.fake.fail = False
        dashboard.fetch_data()

        self.assertIn(t.id, [x.id for x in dashboard.transactions])
        self.assertEqual(dashboard.balance, Decimal('990'))

    def test_update_transaction(self):
        self.go_online()
        t = dashboard.add_transaction('10', 'a', 'expense')
        updated = dashboard.update_transaction(t.id, amount='25', transaction_type='income')

        self.assertTrue(updated.synced)
        self.assertEqual(dashboard.balance, Decimal('1025'))
        row = self.fake.tables[Table.Transactions.value][0]
        self.assertEqual(row['amount'], '25')

        with self.assertRaises(status.TransactionInvalidException):
            dashboard.update_transaction(t.id, synced=True)
        with self.assertRaises(status.TransactionInvalidException):
            dashboard.update_transaction('missing', amount='1')

    def test_update_offline_marks_pending(self):
        self.go_online()
        t = dashboard.add_transaction('10', 'a', 'expense')
        self.go_offline()

        updated = dashboard.update_transaction(t.id, description='b')
        self.assertFalse(updated.synced)
        self.assertEqual(dashboard.pending_count, 1)

    def test_delete_online(self):
        self.go_online()
        t = dashboard.add_transaction('10', 'a', 'expense')
        dashboard.delete_transaction(t.id)

        self.assertEqual(dashboard.transactions, [])
        self.assertEqual(dashboard.balance, Decimal('1000'))
        self.assertEqual(self.fake.tables[Table.Transactions.value], [])
        self.assertEqual(database.load_tombstones(), [])

    def test_delete_offline_leaves_tombstone(self):
        self.go_online()
        t = dashboard.add_transaction('10', 'a', 'expense')
        self.go_offline()

        dashboard.delete_transaction(t.id)
        self.assertEqual(database.load_tombstones(), [t.id])
        self.assertEqual(dashboard.balance, Decimal('1000'))

        self.go_online()
        self.assertEqual(self.fake.tables[Table.Transactions.value], [])
        self.assertEqual(database.load_tombstones(), [])
        self.assertEqual(dashboard.transactions, [])

    def test_update_starting_amount(self):
        self.go_online()
        dashboard.add_transaction('100', 'a', 'expense')

        settings = dashboard.update_starting_amount('50')

        self.assertEqual(settings.current_balance, Decimal('-50'))
        self.assertTrue(dashboard.is_negative)
        self.assertEqual(self.fake.tables[Table.BudgetSettings.value][0]['starting_amount'], '50')
        self.assertEqual(database.load_settings().starting_amount, Decimal('50'))

        with self.assertRaises(status.AmountInvalidException):
            dashboard.update_starting_amount('fifty')

    def test_update_starting_amount_offline(self):
        self.go_online()
        self.go_offline()
        dashboard.update_starting_amount('10')
        self.assertEqual(dashboard.balance, Decimal('10'))
        self.assertEqual(self.fake.calls_of('update'), [])

    def test_offline_starting_amount_is_pushed_on_reconnect(self):
        self.go_online()
        self.go_offline()
        dashboard.update_starting_amount('10')
        self.assertTrue(database.settings_pending())

        self.go_online()

        self.assertEqual(self.fake.tables[Table.BudgetSettings.value][0]['starting_amount'], '10')
        self.assertEqual(dashboard.settings.starting_amount, Decimal('10'))
        self.assertFalse(database.settings_pending())

    def test_pending_starting_amount_survives_fetch(self):
        self.go_online()
        self.go_offline()
        dashboard.update_starting_amount('10')
        self.fake.fail = True
        self.go_online()
        self.fake.fail = False

        dashboard.fetch_data()
        self.assertEqual(dashboard.settings.starting_amount, Decimal('10'))
        self.assertEqual(dashboard.settings.id, 's1')
        self.assertTrue(database.settings_pending())

        dashboard.apply_remote_settings([SETTINGS])
        self.assertEqual(dashboard.settings.starting_amount, Decimal('10'))

    def test_starting_amount_before_settings_row_exists(self):
        self.fake.tables[Table.BudgetSettings.value] = []
        self.go_online()

        dashboard.update_starting_amount('75')

        rows = self.fake.tables[Table.BudgetSettings.value]
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['starting_amount'], '75')
        self.assertFalse(database.settings_pending())
