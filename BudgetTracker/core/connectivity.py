"""Online/offline tracking.

:class:`ConnectivityMonitor` keeps the online flag for the application. It probes the
backend on a timer and can also be driven explicitly through
:meth:`ConnectivityMonitor.set_online`. Signals fire on transitions only.
"""
import logging
from typing import Callable, Optional

from PySide6 import QtCore

from ..settings import lib


class ConnectivityMonitor(QtCore.QObject):
    """Holds the online flag and reports transitions.

    Signals:
        onlineChanged (bool): Emitted when the flag flips.
        wentOnline (): Emitted on every offline-to-online transition.
        wentOffline (): Emitted on every online-to-offline transition.
    """
    onlineChanged = QtCore.Signal(bool)
    wentOnline = QtCore.Signal()
    wentOffline = QtCore.Signal()

    def __init__(
            self,
            probe: Optional[Callable[[], bool]] = None,
            online: bool = False,
            parent: Optional[QtCore.QObject] = None
    ) -> None:
        super().__init__(parent=parent)
        self._online: bool = online
        self._probe: Optional[Callable[[], bool]] = probe

        self.timer = QtCore.QTimer(self)
        self.timer.timeout.connect(self.probe)

    @property
    def is_online(self) -> bool:
        return self._online

    def set_probe(self, probe: Optional[Callable[[], bool]]) -> None:
        self._probe = probe

    def start(self, interval: Optional[int] = None) -> None:
        """Probe once and then keep probing every interval seconds.

        Args:
            interval: Probe interval in seconds. Defaults to the sync section setting.
        """
        if interval is None:
            interval = lib.settings.get_section('sync').get('probe_interval', 15)
        self.timer.setInterval(int(interval * 1000))
        self.timer.start()
        self.probe()

    def stop(self) -> None:
        self.timer.stop()

    @QtCore.Slot()
    def probe(self) -> bool:
        """Ask the backend whether it is reachable and update the flag."""
        if self._probe is None:
            from .remote import remote
            self._probe = remote.ping
        self.set_online(bool(self._probe()))
        return self._online

    @QtCore.Slot(bool)
    def set_online(self, value: bool) -> None:
        if value == self._online:
            return
        self._online = value
        logging.info(f'Connectivity changed: {"online" if value else "offline"}.')

        self.onlineChanged.emit(value)
        from .signals import signals
        signals.onlineChanged.emit(value)

        if value:
            self.wentOnline.emit()
        else:
            self.wentOffline.emit()


connectivity = ConnectivityMonitor()
