"""
Tests for BudgetTracker.core.connectivity.

Run:
    python -m unittest tests.test_connectivity
"""
from unittest.mock import patch

from BudgetTracker.core import remote
from BudgetTracker.core.connectivity import ConnectivityMonitor, connectivity
from BudgetTracker.core.signals import signals
from tests.base import BaseTestCase


class ConnectivityTests(BaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.monitor = ConnectivityMonitor()
        self.changed = self.collect(self.monitor.onlineChanged)
        self.went_online = self.collect(self.monitor.wentOnline)
        self.went_offline = self.collect(self.monitor.wentOffline)

    def tearDown(self) -> None:
        self.monitor.stop()
        super().tearDown()

    def test_starts_offline(self):
        self.assertFalse(self.monitor.is_online)
        self.assertTrue(ConnectivityMonitor(online=True).is_online)

    def test_signals_fire_on_transitions_only(self):
        self.monitor.set_online(True)
        self.monitor.set_online(True)
        self.monitor.set_online(False)
        self.monitor.set_online(False)
        self.monitor.set_online(True)

        self.assertEqual(self.changed, [(True,), (False,), (True,)])
        self.assertEqual(len(self.went_online), 2)
        self.assertEqual(len(self.went_offline), 1)

    def test_app_signal_is_forwarded(self):
        app_changed = self.collect(signals.onlineChanged)
        self.monitor.set_online(True)
        self.assertEqual(app_changed, [(True,)])

    def test_probe(self):
        answers = [True, True, False]
        self.monitor.set_probe(lambda: answers.pop(0))

        self.assertTrue(self.monitor.probe())
        self.assertTrue(self.monitor.probe())
        self.assertFalse(self.monitor.probe())
        self.assertEqual(self.changed, [(True,), (False,)])

    def test_probe_defaults_to_remote_ping(self):
        ping = patch.object(remote.remote, 'ping', return_value=True).start()
        self.assertTrue(self.monitor.probe())
        ping.assert_called_once_with()

    def test_start_probes_at_once(self):
        self.monitor.set_probe(lambda: True)
        self.monitor.start(interval=60)
        self.assertTrue(self.monitor.is_online)
        self.assertTrue(self.monitor.timer.isActive())
        self.assertEqual(self.monitor.timer.interval(), 60000)

        self.monitor.stop()
        self.assertFalse(self.monitor.timer.isActive())

    def test_start_uses_configured_interval(self):
        self.monitor.set_probe(lambda: False)
        self.monitor.start()
        self.assertEqual(self.monitor.timer.interval(), 15000)

    def test_shared_monitor_is_reset(self):
        self.assertFalse(connectivity.is_online)
