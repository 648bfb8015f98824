"""Row-store client for the hosted budget backend.

Talks to a PostgREST style HTTP API (as exposed by Supabase) using :mod:`requests`.
Every table is addressed as ``{url}/rest/v1/{table}`` and rows are exchanged as the
JSON records produced by :mod:`BudgetTracker.core.models`.

Failures are mapped onto status exceptions:

- connection errors, timeouts and 5xx responses raise
  :class:`status.ServiceUnavailableException`
- 401 and 403 responses raise :class:`status.AuthenticationExceptionException`
- any other 4xx response raises :class:`status.RemoteRequestException`
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from PySide6 import QtCore

from .auth import AuthExpiredError, auth_manager
from ..settings import lib
from ..status import status

#: The exceptions a remote call can raise. Controllers catch these and fall back to local state.
REMOTE_ERRORS: Tuple[type, ...] = (
    status.ServiceUnavailableException,
    status.AuthenticationExceptionException,
    status.RemoteRequestException,
    status.RemoteUrlNotConfiguredException,
    status.CredsInvalidException,
)


def get_remote_config() -> Tuple[str, str, int]:
    """Return the configured base url, api key and timeout.

    Raises:
        status.RemoteUrlNotConfiguredException: If no backend url is configured.
    """
    config = lib.settings.get_section('remote')
    url = config.get('url', '').rstrip('/')
    if not url:
        raise status.RemoteUrlNotConfiguredException
    return url, config.get('key', ''), config.get('timeout', 10)


def raise_for_response(response: requests.Response) -> None:
    """Map an unsuccessful response onto a status exception."""
    code = response.status_code
    if code < 400:
        return

    try:
        detail = response.json()
        detail = detail.get('message') or detail.get('error_description') or detail.get('msg') or detail
    except ValueError:
        detail = response.text

    msg = f'{response.request.method if response.request else ""} {response.url} returned {code}: {detail}'
    if code >= 500:
        raise status.ServiceUnavailableException(msg)
    if code in (401, 403):
        raise status.AuthenticationExceptionException(msg)
    raise status.RemoteRequestException(msg)


def _eq(match: Dict[str, Any]) -> Dict[str, str]:
    return {k: f'eq.{v}' for k, v in match.items()}


class RemoteAPI:
    """Client for the remote tables.

    The HTTP session is created lazily and reused between calls.
    """

    def __init__(self) -> None:
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def _headers(self, key: str, prefer: Optional[str] = None) -> Dict[str, str]:
        token = key
        try:
            token = auth_manager.get_valid_session()['access_token']
        except AuthExpiredError as ex:
            logging.debug(f'No user session, using the anonymous key: {ex}')
            from .signals import signals
            signals.authenticationRequested.emit()

        headers = {
            'apikey': key,
            'Authorization': f'Bearer {token}',
            'Content-Type': 'application/json',
        }
        if prefer:
            headers['Prefer'] = prefer
        return headers

    def _request(
            self,
            method: str,
            table: str,
            params: Optional[Dict[str, Any]] = None,
            payload: Any = None,
            prefer: Optional[str] = None
    ) -> Any:
        url, key, timeout = get_remote_config()
        endpoint = f'{url}/rest/v1/{table}'
        logging.debug(f'{method} {endpoint} params={params}')

        try:
            response = self.session.request(
                method,
                endpoint,
                params=params,
                json=payload,
                headers=self._headers(key, prefer=prefer),
                timeout=timeout,
            )
        except requests.RequestException as ex:
            raise status.ServiceUnavailableException(f'{method} {endpoint} failed: {ex}') from ex

        raise_for_response(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def select(
            self,
            table: str,
            order: Optional[str] = None,
            descending: bool = False,
            single: bool = False,
            columns: str = '*',
            match: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Read rows from a table.

        Args:
            table: Remote table name.
            order: Optional column to order by.
            descending: Order direction.
            single: Return the first row (or None) instead of a list.
            columns: Column selection.
            match: Optional column equality filters.

        Returns:
            A list of records, or a single record/None when single is set.
        """
        params: Dict[str, Any] = {'select': columns}
        if order:
            params['order'] = f'{order}.{"desc" if descending else "asc"}'
        if single:
            params['limit'] = 1
        if match:
            params.update(_eq(match))

        rows = self._request('GET', table, params=params) or []
        if single:
            return rows[0] if rows else None
        return rows

    def insert(self, table: str, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Insert a row and return the stored representation."""
        rows = self._request('POST', table, payload=record, prefer='return=representation')
        return rows[0] if rows else None

    def upsert(self, table: str, record: Dict[str, Any], on_conflict: str = 'id') -> Optional[Dict[str, Any]]:
        """Insert a row or merge it into the existing row with the same key."""
        rows = self._request(
            'POST',
            table,
            params={'on_conflict': on_conflict},
            payload=record,
            prefer='resolution=merge-duplicates,return=representation'
        )
        return rows[0] if rows else None

    def update(self, table: str, values: Dict[str, Any], match: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Update the rows matching every key/value pair in match."""
        if not match:
            raise ValueError('Refusing to update without a match filter.')
        return self._request(
            'PATCH', table, params=_eq(match), payload=values, prefer='return=representation'
        ) or []

    def delete(self, table: str, match: Dict[str, Any]) -> None:
        """Delete the rows matching every key/value pair in match."""
        if not match:
            raise ValueError('Refusing to delete without a match filter.')
        self._request('DELETE', table, params=_eq(match))

    def ping(self) -> bool:
        """Return True if the backend answers at all. Never raises."""
        config = lib.settings.get_section('remote')
        url = config.get('url', '').rstrip('/')
        if not url:
            return False
        try:
            response = self.session.get(
                f'{url}/rest/v1/',
                headers={'apikey': config.get('key', '')},
                timeout=config.get('timeout', 10),
            )
        except requests.RequestException as ex:
            logging.debug(f'Ping failed: {ex}')
            return False
        return response.status_code < 500

    def subscribe(
            self,
            table: str,
            callback: Callable[[List[Dict[str, Any]]], None],
            interval: Optional[int] = None
    ) -> 'Subscription':
        """Poll a table and call back with its rows whenever they change.

        Args:
            table: Remote table name.
            callback: Called with the full list of rows after a change.
            interval: Poll interval in seconds. Defaults to the sync section setting.

        Returns:
            Subscription: The started subscription.
        """
        if interval is None:
            interval = lib.settings.get_section('sync').get('subscription_interval', 5)
        sub = Subscription(self, table, callback, interval)
        sub.start()
        return sub


class Subscription(QtCore.QObject):
    """Polls a remote table on a timer and reports changed rows.

    The first successful poll only records a baseline.
    """

    def __init__(
            self,
            client: RemoteAPI,
            table: str,
            callback: Callable[[List[Dict[str, Any]]], None],
            interval: int,
            parent: Optional[QtCore.QObject] = None
    ) -> None:
        super().__init__(parent=parent)
        self.client = client
        self.table = table
        self.callback = callback
        self._last: Optional[List[Dict[str, Any]]] = None

        self.timer = QtCore.QTimer(self)
        self.timer.setInterval(int(interval * 1000))
        self.timer.timeout.connect(self.poll)

    def start(self) -> None:
        self.timer.start()

    def stop(self) -> None:
        self.timer.stop()

    def is_active(self) -> bool:
        return self.timer.isActive()

    @QtCore.Slot()
    def poll(self) -> None:
        try:
            rows = self.client.select(self.table)
        except REMOTE_ERRORS as ex:
            logging.debug(f'Subscription poll of "{self.table}" failed: {ex}')
            return

        if self._last is not None and rows != self._last:
            logging.debug(f'Remote "{self.table}" changed.')
            self.callback(rows)
        self._last = rows


remote = RemoteAPI()
