# =============================================================================
# core/graph_session.py - Authenticated Microsoft Graph session
# =============================================================================

import base64
import json
import logging
import time
import webbrowser
from typing import Any, Callable, Dict, List, Optional

import msal
import requests

from core.errors import AuthError, InteractiveAuthUnavailable

GRAPH_SCOPE_PREFIX = "https://graph.microsoft.com/"
DELEGATED_SCOPES = ["User.Read.All", "AuditLog.Read.All", "GroupMember.Read.All"]
APP_ONLY_SCOPES = ["https://graph.microsoft.com/.default"]


class GraphSession:
    """
    Process-scoped authenticated handle to Microsoft Graph.

    Delegated sign-in tries a cached account first, then the interactive
    browser flow, and falls back to the device-code flow only when the
    browser flow is unavailable. When a client secret is configured the
    session uses app-only client credentials instead.

    Use as a context manager so the session is always released.
    """

    def __init__(self, client_id: str, tenant_id: str = "organizations",
                 client_secret: Optional[str] = None,
                 base_url: str = "https://graph.microsoft.com/v1.0",
                 auth_timeout: int = 30, max_attempts: int = 2,
                 request_timeout: int = 30,
                 prompt: Callable[[str], None] = print,
                 app: Any = None,
                 http: Optional[requests.Session] = None):
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.client_secret = client_secret
        self.base_url = base_url
        self.auth_timeout = auth_timeout
        self.max_attempts = max(1, max_attempts)
        self.request_timeout = request_timeout
        self.prompt = prompt
        self._app = app
        self._http = http
        self._token: Optional[str] = None
        self._token_result: Dict[str, Any] = {}
        self.logger = logging.getLogger(__name__)

    def __enter__(self):
        """Context manager entry"""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.disconnect()

    @property
    def authority(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant_id}"

    @property
    def is_connected(self) -> bool:
        return self._token is not None

    @property
    def app_only(self) -> bool:
        return bool(self.client_secret)

    def connect(self) -> None:
        """Acquire a token, retrying the whole strategy chain up to max_attempts"""
        last_error: Optional[AuthError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = self._acquire_token()
            except AuthError as e:
                last_error = e
                self.logger.warning(f"Authentication attempt {attempt}/{self.max_attempts} failed: {e}")
                continue

            self._token = result["access_token"]
            self._token_result = result
            if self._http is None:
                self._http = requests.Session()
            self.logger.info("Successfully connected to Microsoft Graph")
            return

        raise AuthError(
            f"Could not establish a Graph session after {self.max_attempts} attempt(s): {last_error}"
        )

    def disconnect(self) -> None:
        """Drop the token and cached accounts, then close the HTTP session"""
        if self._app is not None and not self.app_only:
            for account in self._app.get_accounts():
                self._app.remove_account(account)

        if self._http is not None:
            self._http.close()
            self._http = None

        if self._token is not None:
            self._token = None
            self._token_result = {}
            self.logger.info("Disconnected from Microsoft Graph")

    def get(self, url: str, params: Optional[Dict[str, str]] = None,
            headers: Optional[Dict[str, str]] = None) -> requests.Response:
        """Issue an authenticated GET against an absolute Graph URL"""
        if not self.is_connected:
            raise AuthError("Not connected to Microsoft Graph")

        request_headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
        }
        if headers:
            request_headers.update(headers)

        return self._http.get(url, params=params, headers=request_headers,
                              timeout=self.request_timeout)

    @property
    def granted_scopes(self) -> List[str]:
        """Scopes (delegated) or roles (app-only) carried by the current token"""
        if self._token_result.get("scope"):
            scopes = self._token_result["scope"].split()
            return [s.replace(GRAPH_SCOPE_PREFIX, "") for s in scopes]
        claims = _decode_jwt_claims(self._token or "")
        return list(claims.get("roles", []))

    def _acquire_token(self) -> Dict[str, Any]:
        # msal hits the network for authority discovery and raises ValueError
        # for an unknown tenant; both count as a failed attempt
        try:
            if self.app_only:
                return self._acquire_app_only()
            return self._acquire_delegated()
        except requests.exceptions.RequestException as e:
            raise AuthError(f"Could not reach the identity platform: {e}")
        except ValueError as e:
            raise AuthError(f"Identity platform rejected the configuration: {e}")

    def _acquire_app_only(self) -> Dict[str, Any]:
        if self._app is None:
            self._app = msal.ConfidentialClientApplication(
                self.client_id,
                authority=self.authority,
                client_credential=self.client_secret,
            )

        result = self._app.acquire_token_for_client(scopes=APP_ONLY_SCOPES)
        return _check_token_result(result, "client credentials")

    def _acquire_delegated(self) -> Dict[str, Any]:
        if self._app is None:
            self._app = msal.PublicClientApplication(self.client_id, authority=self.authority)

        accounts = self._app.get_accounts()
        if accounts:
            result = self._app.acquire_token_silent(DELEGATED_SCOPES, account=accounts[0])
            if result and "access_token" in result:
                self.logger.debug("Reused cached token")
                return result

        try:
            return self._acquire_interactive()
        except InteractiveAuthUnavailable as e:
            self.logger.info(f"Interactive sign-in unavailable ({e}), falling back to device code")
            return self._acquire_device_code()

    def _acquire_interactive(self) -> Dict[str, Any]:
        try:
            webbrowser.get()
        except webbrowser.Error as e:
            raise InteractiveAuthUnavailable(f"no browser available: {e}")

        try:
            result = self._app.acquire_token_interactive(
                DELEGATED_SCOPES, timeout=self.auth_timeout, prompt="select_account"
            )
        except (webbrowser.Error, OSError) as e:
            raise InteractiveAuthUnavailable(str(e))

        return _check_token_result(result, "interactive")

    def _acquire_device_code(self) -> Dict[str, Any]:
        flow = self._app.initiate_device_flow(scopes=DELEGATED_SCOPES)
        if "user_code" not in flow:
            raise AuthError(
                f"Device code start failed: {flow.get('error')} - {flow.get('error_description')}"
            )

        self.prompt(flow["message"])

        # Bound the polling window
        deadline = time.time() + self.auth_timeout
        flow["expires_at"] = min(flow.get("expires_at", deadline), deadline)

        result = self._app.acquire_token_by_device_flow(flow)
        return _check_token_result(result, "device code")


def _check_token_result(result: Optional[Dict[str, Any]], flow_name: str) -> Dict[str, Any]:
    if result and "access_token" in result:
        return result
    result = result or {}
    raise AuthError(
        f"{flow_name} sign-in failed: {result.get('error', 'unknown_error')} - "
        f"{result.get('error_description', 'No details')}"
    )


def _decode_jwt_claims(token: str) -> Dict[str, Any]:
    parts = token.split(".")
    if len(parts) != 3:
        return {}
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        return json.loads(base64.urlsafe_b64decode(payload))
    except ValueError:
        return {}
