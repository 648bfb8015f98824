"""
Email/password authentication and session management.

Signs the user in against the backend's token endpoint, stores the session (access
token, refresh token, expiry and email) as JSON in the config auth directory and
refreshes it silently when it expires.
"""

import json
import logging
import threading
import time
from typing import Any, Dict, Optional

import requests

from ..status import status

#: Seconds before the expiry at which a session is treated as expired.
EXPIRY_MARGIN: int = 60


class AuthExpiredError(Exception):
    """Raised when there is no usable session and an interactive sign-in is required."""
    pass


def _auth_endpoint(grant_type: str):
    from ..settings import lib
    config = lib.settings.get_section('remote')
    url = config.get('url', '').rstrip('/')
    if not url:
        raise status.RemoteUrlNotConfiguredException
    return (
        f'{url}/auth/v1/token',
        {'grant_type': grant_type},
        {'apikey': config.get('key', ''), 'Content-Type': 'application/json'},
        config.get('timeout', 10),
    )


def _token_request(grant_type: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Post to the token endpoint.

    Returns:
        The session dict, or None if the backend rejected the grant.

    Raises:
        status.ServiceUnavailableException: If the backend cannot be reached or fails.
    """
    endpoint, params, headers, timeout = _auth_endpoint(grant_type)
    try:
        response = requests.post(endpoint, params=params, json=payload, headers=headers, timeout=timeout)
    except requests.RequestException as ex:
        raise status.ServiceUnavailableException(f'Token request failed: {ex}') from ex

    if response.status_code >= 500:
        raise status.ServiceUnavailableException(f'Token request returned {response.status_code}.')
    if response.status_code >= 400:
        logging.debug(f'Token request ({grant_type}) rejected with {response.status_code}: {response.text}')
        return None

    data = response.json()
    expires_at = data.get('expires_at') or int(time.time()) + int(data.get('expires_in', 3600))
    return {
        'access_token': data['access_token'],
        'refresh_token': data.get('refresh_token'),
        'expires_at': int(expires_at),
        'email': (data.get('user') or {}).get('email') or payload.get('email'),
    }


def save_session(session: Dict[str, Any]) -> None:
    """Write the session to the configured session file."""
    from ..settings import lib
    lib.settings.creds_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lib.settings.creds_path, 'w', encoding='utf-8') as f:
        json.dump(session, f, indent=4)
    logging.debug(f'Session saved to {lib.settings.creds_path}.')


def is_expired(session: Dict[str, Any]) -> bool:
    return session.get('expires_at', 0) - EXPIRY_MARGIN <= time.time()


class AuthManager:
    """Manages the signed-in session with thread-safe refresh."""

    def __init__(self):
        self._lock = threading.Lock()
        self._session: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        from ..settings import lib
        if not lib.settings.creds_path.exists():
            raise AuthExpiredError('No saved session; interactive sign-in required')
        try:
            with open(lib.settings.creds_path, 'r', encoding='utf-8') as f:
                session = json.load(f)
            if not session.get('access_token'):
                raise ValueError('Session has no access token')
        except (ValueError, OSError) as ex:
            lib.settings.creds_path.unlink(missing_ok=True)
            raise status.CredsInvalidException(f'Failed to load session: {ex}') from ex
        return session

    def get_valid_session(self) -> Dict[str, Any]:
        """
        Return a valid session without any interaction.

        Raises:
            AuthExpiredError: if no session exists or the refresh token was rejected.
            status.CredsInvalidException: if the stored session is corrupt.
            status.ServiceUnavailableException: if a refresh could not reach the backend.
        """
        with self._lock:
            if self._session is None:
                self._session = self._load()

            if not is_expired(self._session):
                return self._session

            refresh_token = self._session.get('refresh_token')
            if not refresh_token:
                raise AuthExpiredError('Session expired; interactive sign-in required')

            logging.debug('Session expired, refreshing.')
            session = _token_request('refresh_token', {'refresh_token': refresh_token})
            if session is None:
                self._clear()
                raise AuthExpiredError('Session refresh was rejected; interactive sign-in required')

            session['email'] = session.get('email') or self._session.get('email')
            save_session(session)
            self._session = session
            return self._session

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """Sign in with email and password and store the session.

        Raises:
            status.AuthenticationExceptionException: If the credentials are rejected.
            status.ServiceUnavailableException: If the backend cannot be reached.
        """
        email = (email or '').strip()
        if not email or not password:
            raise status.AuthenticationExceptionException('Email and password are required.')

        session = _token_request('password', {'email': email, 'password': password})
        if session is None:
            raise status.AuthenticationExceptionException('Invalid email or password.')

        with self._lock:
            save_session(session)
            self._session = session
        logging.info(f'Signed in as {email}.')
        return session

    def sign_out(self) -> None:
        """Forget the session and delete the stored session file."""
        with self._lock:
            self._clear()
        logging.debug('Signed out.')

    def _clear(self) -> None:
        from ..settings import lib
        self._session = None
        if lib.settings.creds_path.exists():
            logging.debug(f'Deleting {lib.settings.creds_path}...')
            lib.settings.creds_path.unlink()

    @property
    def email(self) -> Optional[str]:
        """The email of the stored session, if any."""
        try:
            return self.get_valid_session().get('email')
        except AuthExpiredError:
            return None

    def verify_password(self, password: str) -> bool:
        """Re-check the password of the signed-in user.

        Returns:
            bool: True if the backend accepts the password.

        Raises:
            AuthExpiredError: If nobody is signed in.
            status.ServiceUnavailableException: If the backend cannot be reached.
        """
        if not password:
            return False
        email = self.email
        if not email:
            raise AuthExpiredError('No signed-in user to verify the password for')

        session = _token_request('password', {'email': email, 'password': password})
        if session is None:
            return False

        with self._lock:
            save_session(session)
            self._session = session
        return True


auth_manager = AuthManager()


def sign_in(email: str, password: str) -> Dict[str, Any]:
    return auth_manager.sign_in(email, password)


def sign_out() -> None:
    auth_manager.sign_out()


def get_valid_session() -> Dict[str, Any]:
    return auth_manager.get_valid_session()


def verify_password(password: str) -> bool:
    return auth_manager.verify_password(password)
