import collections
import logging
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

from ..core.signals import signals

LOG_LEVEL = logging.WARNING
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

TANK_SIZE = 5000

LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'critical': logging.CRITICAL,
}

QT_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}


def set_logging_level(level):
    """
    Sets the level of the root logger and of every handler installed on it.

    Args:
        level (int or str): A standard logging level, or its name, e.g. 'info'.
    """
    if isinstance(level, str):
        if level.lower() not in LEVELS:
            raise ValueError(f'Unknown logging level "{level}", use one of {list(LEVELS)}.')
        level = LEVELS[level.lower()]
    if isinstance(level, bool) or not isinstance(level, int):
        raise ValueError('Logging level must be an integer or a level name.')
    if level not in LEVELS.values():
        raise ValueError('Invalid logging level. Use one of the standard logging levels, e.g., logging.DEBUG.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    """
    Forwards Qt's own messages to the 'Qt' logger. A fatal message exits.
    """
    level = QT_LEVELS.get(mode, logging.INFO)
    logging.getLogger('Qt').log(level, message.strip())
    if mode == QtMsgType.QtFatalMsg:
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=LOG_LEVEL):
    """
    Configures the root logger with a stderr stream and the in-memory tank.

    Args:
        enable_stream_handler (bool): Also write records to stderr.
        enable_qt_handler (bool): Route Qt's own messages through Python logging.
        log_level (int): Level applied to the root logger and its handlers.
    """
    root_logger = logging.getLogger()

    # Clear all handlers to avoid formatting conflicts
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if enable_stream_handler:
        # stdout is reserved for command output
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)

    tank_handler = TankHandler()
    tank_handler.setFormatter(formatter)
    root_logger.addHandler(tank_handler)

    set_logging_level(log_level)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank():
    """Return the TankHandler installed on the root logger, if any."""
    return next((h for h in logging.getLogger().handlers if isinstance(h, TankHandler)), None)


class TankHandler(logging.Handler):
    """
    Keeps the most recent formatted records in memory.

    The tank is the notification history of a running session: user-facing
    notifications are logged at INFO with a 'Notification:' prefix and can be read back
    with :meth:`get_notifications`. Records at ERROR and above emit ``signals.showLogs``.

    Attributes:
        tank (collections.deque[tuple[int, str]]): (level, formatted message) pairs, oldest first.
    """
    NOTIFICATION_PREFIX = 'Notification: '

    def __init__(self, maxlen=TANK_SIZE):
        super().__init__()
        self.tank = collections.deque(maxlen=maxlen)
        self._notifications = collections.deque(maxlen=maxlen)

    def emit(self, record):
        try:
            message = self.format(record)
            self.tank.append((record.levelno, message))

            raw = record.getMessage()
            if raw.startswith(self.NOTIFICATION_PREFIX):
                self._notifications.append(raw[len(self.NOTIFICATION_PREFIX):])

            if record.levelno >= logging.ERROR:
                signals.showLogs.emit()
        except (Exception, KeyboardInterrupt):
            self.handleError(record)

    def get_logs(self, level=logging.NOTSET):
        """
        Returns the stored messages at or above the given level.

        Args:
            level (int, optional): The minimum logging level. Defaults to logging.NOTSET.

        Returns:
            list[str]: Formatted messages, oldest first.
        """
        return [msg for lvl, msg in self.tank if lvl >= level]

    def get_notifications(self):
        """Returns the user-facing notifications seen so far, oldest first."""
        return list(self._notifications)

    def clear_logs(self):
        self.tank.clear()
        self._notifications.clear()
