"""Client for the Synology DSM web API.

The client holds one session id (``sid``) at a time. A call that fails with
the session-expired code triggers a single re-login and a single retry; a
second expiry is raised to the caller instead of looping.

TLS verification is disabled because DSM appliances usually serve a
self-signed certificate on port 5001.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
import urllib3

from syno_vm import __version__
from syno_vm.exceptions import APIError, AuthenticationError, ConnectionError, SessionExpiredError
from syno_vm.models import APIResponse, SessionState

logger = logging.getLogger(__name__)

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

AUTH_PATH = "/webapi/auth.cgi"
ENTRY_PATH = "/webapi/entry.cgi"
AUTH_API = "SYNO.API.Auth"
AUTH_VERSION = "3"
SESSION_NAME = "VMM"
SESSION_EXPIRED_CODE = 105
REQUEST_TIMEOUT = 30
DEFAULT_PORT = 5001


def _format_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class WebAPIClient:
    """Session-authenticated client for DSM web API calls."""

    MAX_SESSION_RETRIES = 1

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        port: int = DEFAULT_PORT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = f"https://{host}:{port}"
        self.username = username
        self.password = password
        self.session = session or requests.Session()
        self.session.verify = False
        self.session.headers["User-Agent"] = f"syno-vm/{__version__}"
        self._sid: Optional[str] = None

    @property
    def state(self) -> SessionState:
        return SessionState.AUTHENTICATED if self._sid else SessionState.UNAUTHENTICATED

    @property
    def session_id(self) -> Optional[str]:
        return self._sid

    def _get(self, path: str, params: Dict[str, str]) -> APIResponse:
        """Issue a GET request and decode the JSON envelope."""
        url = self.base_url + path
        try:
            response = self.session.get(url, params=params, timeout=REQUEST_TIMEOUT, verify=False)
        except requests.RequestException as e:
            raise ConnectionError(f"HTTP request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise APIError(
                f"HTTP error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise APIError(f"failed to parse API response: {e}", status_code=response.status_code) from e
        if not isinstance(payload, dict):
            raise APIError("failed to parse API response: expected a JSON object")

        return APIResponse.from_json(payload)

    def login(self) -> None:
        """Authenticate and store the session id.

        Raises:
            AuthenticationError: If DSM rejects the login
        """
        params = {
            "api": AUTH_API,
            "version": AUTH_VERSION,
            "method": "login",
            "account": self.username,
            "passwd": self.password,
            "session": SESSION_NAME,
            "format": "cookie",
        }
        logger.debug("Logging in to %s as %s", self.base_url, self.username)
        response = self._get(AUTH_PATH, params)

        if not response.success:
            code = response.error_code if response.error_code is not None else 0
            raise AuthenticationError(f"login failed with error code {code}", code=code)

        sid = response.data.get("sid")
        if not sid:
            raise AuthenticationError("login response did not include a session id")
        self._sid = str(sid)

    def logout(self) -> None:
        """End the session. The session id is dropped even if the request fails."""
        if self._sid is None:
            return

        params = {
            "api": AUTH_API,
            "version": AUTH_VERSION,
            "method": "logout",
            "session": SESSION_NAME,
            "_sid": self._sid,
        }
        self._sid = None
        try:
            self._get(AUTH_PATH, params)
        except (APIError, ConnectionError) as e:
            logger.warning("Logout request failed: %s", e)

    def call_api(
        self,
        api: str,
        method: str,
        version: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> APIResponse:
        """Call a named API method with the current session.

        Failure responses other than session expiry are returned for the
        caller to inspect.

        Raises:
            AuthenticationError: If login (or the single re-login) fails
            SessionExpiredError: If the session is still expired after re-login
        """
        query = {"api": api, "method": method, "version": str(version)}
        for key, value in (params or {}).items():
            query[key] = _format_param(value)

        for attempt in range(self.MAX_SESSION_RETRIES + 1):
            if self.state is SessionState.UNAUTHENTICATED:
                self.login()
            logger.debug("Calling %s.%s v%s (attempt %d)", api, method, version, attempt + 1)
            response = self._get(ENTRY_PATH, dict(query, _sid=str(self._sid)))
            if response.success or response.error_code != SESSION_EXPIRED_CODE:
                return response

            logger.info("Web API session expired, logging in again")
            self._sid = None

        raise SessionExpiredError(
            f"{api}.{method}: session expired again after re-login",
            code=SESSION_EXPIRED_CODE,
        )

    def close(self) -> None:
        self.logout()
        self.session.close()

    def __enter__(self) -> "WebAPIClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class VirtualizationAPI:
    """Virtual Machine Manager guest calls on top of a WebAPIClient."""

    GUEST_API = "SYNO.Virtualization.API.Guest"

    def __init__(self, client: WebAPIClient) -> None:
        self.client = client

    def list_guests(self) -> List[Dict[str, Any]]:
        response = self.client.call_api(self.GUEST_API, "list", "1")
        response.raise_for_error()
        return list(response.data.get("guests", []))
