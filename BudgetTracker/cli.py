"""Command line interface.

Subcommands:

- ``run``: keep a sync agent running on a Qt event loop
- ``login`` / ``logout``: manage the saved session
- ``configure``: set the backend url and key
- ``balance``, ``add``, ``history``, ``categories``, ``accounts``: work with the budget
- ``sync``: push pending changes now
"""
import argparse
import getpass
import signal
import sys
from typing import List, Optional

from PySide6 import QtCore

from .core.models import DEFAULT_COLOR, DEFAULT_ICON, PRESET_COLORS, PRESET_ICONS
from .log import log
from .status import status


def _probe() -> bool:
    from .core.connectivity import connectivity
    online = connectivity.probe()
    if not online:
        print('Offline: showing local data. Changes will sync when back online.')
    return online


def _load_dashboard():
    from .core.dashboard import dashboard
    # going online sweeps and fetches through the dashboard
    if not _probe():
        dashboard.fetch_data()
    return dashboard


def _cmd_run(args: argparse.Namespace) -> int:
    from .core.connectivity import connectivity
    from .core.dashboard import dashboard
    from .core.signals import signals

    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(sys.argv)
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    signals.notification.connect(lambda msg: print(msg))
    signals.syncFinished.connect(
        lambda results: print(f'Sync finished: {sum(1 for ok, _ in results.values() if ok)}/{len(results)} ok')
        if results else None
    )

    dashboard.load_local()
    connectivity.start(args.interval)

    print('Sync agent running. Press Ctrl+C to stop.')
    return app.exec()


def _cmd_configure(args: argparse.Namespace) -> int:
    from .settings import lib
    config = lib.settings.get_section('remote')
    previous_url = config.get('url', '')
    if args.url is not None:
        config['url'] = args.url
    if args.key is not None:
        config['key'] = args.key
    if args.timeout is not None:
        config['timeout'] = args.timeout
    try:
        lib.settings.set_section('remote', config)
    except (ValueError, TypeError) as ex:
        print(f'Invalid configuration: {ex}', file=sys.stderr)
        return 1
    print(f'Backend set to {config["url"] or "(none)"}.')

    # the session and the mirror belong to the previous backend
    if previous_url and config['url'] != previous_url:
        from .core import auth
        from .core.database import database
        auth.sign_out()
        database.reset_cache()
        print('Signed out and cleared the local data of the previous backend.')
    return 0


def _cmd_login(args: argparse.Namespace) -> int:
    from .core import auth
    email = args.email or input('Email: ')
    password = getpass.getpass('Password: ')
    session = auth.sign_in(email, password)
    print(f'Signed in as {session["email"]}.')
    return 0


def _cmd_logout(args: argparse.Namespace) -> int:
    from .core import auth
    auth.sign_out()
    if args.clear_cache:
        from .core.dashboard import dashboard
        from .core.database import database
        database.reset_cache()
        dashboard.clear()
        print('Local data cleared.')
    print('Signed out.')
    return 0


def _cmd_balance(args: argparse.Namespace) -> int:
    from .data.data import format_currency
    from .settings import lib

    dashboard = _load_dashboard()
    print(f'Starting amount: {format_currency(dashboard.settings.starting_amount)}')
    print(f'Current balance: {format_currency(dashboard.balance)}')
    if dashboard.pending_count:
        print(f'{dashboard.pending_count} pending sync')
    if dashboard.is_negative and lib.settings['warn_negative_balance']:
        print('Warning: your balance is negative. Consider reviewing your expenses.')
    return 0


def _cmd_starting(args: argparse.Namespace) -> int:
    from .data.data import format_currency

    dashboard = _load_dashboard()
    settings = dashboard.update_starting_amount(args.amount)
    print(f'Current balance: {format_currency(settings.current_balance)}')
    return 0


def _cmd_add(args: argparse.Namespace) -> int:
    from .data.data import format_currency

    dashboard = _load_dashboard()
    transaction = dashboard.add_transaction(
        args.amount,
        args.description,
        args.type,
        category_id=args.category,
        transaction_date=args.date,
    )
    state = 'synced' if transaction.synced else 'pending sync'
    print(f'Added {transaction.transaction_type} {format_currency(transaction.amount)} ({state}).')
    print(f'Current balance: {format_currency(dashboard.balance)}')
    return 0


def _cmd_delete(args: argparse.Namespace) -> int:
    dashboard = _load_dashboard()
    dashboard.delete_transaction(args.id)
    print(f'Deleted {args.id}.')
    return 0


def _cmd_history(args: argparse.Namespace) -> int:
    from .core.database import database
    from .data.data import format_currency, get_monthly_history

    _probe()
    if args.csv:
        database.transactions_frame().to_csv(args.csv, index=False)
        print(f'Exported transactions to {args.csv}.')
        return 0

    history = get_monthly_history()
    if not history:
        print('No transaction history found.')
        return 0

    for summary in history:
        print(f'{summary.month_name}  ({len(summary.transactions)} transactions)')
        print(f'  Income:   {format_currency(summary.total_income)}')
        print(f'  Expenses: {format_currency(summary.total_expenses)}')
        print(f'  Net:      {format_currency(summary.net_amount)}')
        print(f'  Balance:  {format_currency(summary.ending_balance)}')
        if args.verbose:
            for t in summary.transactions:
                sign = '+' if t.transaction_type == 'income' else '-'
                print(f'    {t.transaction_date[:10]}  {sign}{format_currency(t.amount)}  {t.description}')
    return 0


def _cmd_sync(args: argparse.Namespace) -> int:
    from .core.dashboard import dashboard  # sweeps on the online transition
    from .core.sync import sync

    results = {}
    sync.sweepFinished.connect(results.update)
    if not _probe():
        print(f'{sync.pending_count()} change(s) waiting.')
        return 1

    for _id, (ok, msg) in results.items():
        print(f'{"ok  " if ok else "FAIL"} {_id}: {msg}')
    if not results:
        print('Nothing to sync.')
    return 0 if all(ok for ok, _ in results.values()) else 1


def _cmd_categories(args: argparse.Namespace) -> int:
    from .core.categories import categories

    _probe()
    if args.add:
        category = categories.add_category(args.add, color=args.color, icon=args.icon, parent_id=args.parent)
        print(f'Created {category.name} ({category.id}).')
        return 0
    if args.delete:
        categories.delete_category(args.delete)
        print(f'Deleted {args.delete}.')
        return 0

    categories.fetch_categories()
    for root in categories.root_categories():
        print(f'{root.name}  {root.color}  {root.icon}  [{root.id}]')
        for child in categories.children_of(root.id):
            print(f'  └ {child.name}  {child.color}  {child.icon}  [{child.id}]')
    return 0


def _cmd_accounts(args: argparse.Namespace) -> int:
    from .core.accounts import accounts

    _probe()
    items = accounts.fetch_accounts()
    if args.show:
        accounts.unlock(getpass.getpass('Password: '))

    if not items:
        print('No accounts found.')
    for account in items:
        print(f'{account.label:<24} {account.kind:<12} {accounts.display_number(account)}')
    accounts.lock()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='BudgetTracker', description='Personal budget tracker.')
    parser.add_argument(
        '--log-level', choices=list(log.LEVELS), default='warning', help='Logging level written to stderr.'
    )
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('run', help='Run the sync agent until interrupted.')
    p.add_argument('--interval', type=int, help='Connectivity probe interval in seconds.')
    p.set_defaults(func=_cmd_run)

    p = sub.add_parser('configure', help='Set the backend url, key and timeout.')
    p.add_argument('--url')
    p.add_argument('--key')
    p.add_argument('--timeout', type=int)
    p.set_defaults(func=_cmd_configure)

    p = sub.add_parser('login', help='Sign in with email and password.')
    p.add_argument('--email')
    p.set_defaults(func=_cmd_login)

    p = sub.add_parser('logout', help='Sign out.')
    p.add_argument('--clear-cache', action='store_true', help='Also delete the local data.')
    p.set_defaults(func=_cmd_logout)

    p = sub.add_parser('balance', help='Show the current balance.')
    p.set_defaults(func=_cmd_balance)

    p = sub.add_parser('starting', help='Set the starting amount.')
    p.add_argument('amount')
    p.set_defaults(func=_cmd_starting)

    p = sub.add_parser('add', help='Record a transaction.')
    p.add_argument('amount')
    p.add_argument('description')
    p.add_argument('--type', choices=['income', 'expense'], default='expense')
    p.add_argument('--category', help='Category id.')
    p.add_argument('--date', help='ISO date or timestamp. Defaults to now.')
    p.set_defaults(func=_cmd_add)

    p = sub.add_parser('delete', help='Delete a transaction.')
    p.add_argument('id')
    p.set_defaults(func=_cmd_delete)

    p = sub.add_parser('history', help='Show the monthly history.')
    p.add_argument('-v', '--verbose', action='store_true', help='List the transactions of each month.')
    p.add_argument('--csv', help='Export the mirrored transactions to a CSV file instead.')
    p.set_defaults(func=_cmd_history)

    p = sub.add_parser('sync', help='Push pending changes now.')
    p.set_defaults(func=_cmd_sync)

    p = sub.add_parser('categories', help='List, add or delete categories.')
    p.add_argument('--add', metavar='NAME')
    p.add_argument('--color', default=DEFAULT_COLOR, help='#RRGGBB, e.g. ' + ', '.join(PRESET_COLORS[:6]))
    p.add_argument('--icon', default=DEFAULT_ICON, choices=[DEFAULT_ICON] + PRESET_ICONS, metavar='ICON')
    p.add_argument('--parent', help='Parent category id.')
    p.add_argument('--delete', metavar='ID')
    p.set_defaults(func=_cmd_categories)

    p = sub.add_parser('accounts', help='List accounts.')
    p.add_argument('--show', action='store_true', help='Ask for the password and show account numbers.')
    p.set_defaults(func=_cmd_accounts)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    log.set_logging_level(args.log_level)
    try:
        return args.func(args)
    except status.BaseStatusException as ex:
        print(str(ex), file=sys.stderr)
        return 1
