"""Test package.

Qt's standard paths are switched to test mode before BudgetTracker is imported, so the
settings singleton never touches the user's real application data.
"""
import os

from PySide6 import QtCore

os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')
QtCore.QStandardPaths.setTestModeEnabled(True)
