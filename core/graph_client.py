# =============================================================================
# core/graph_client.py - Microsoft Graph user and group lookups
# =============================================================================

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests

from core.errors import (
    Forbidden,
    GraphApiError,
    NotFound,
    Throttled,
    Transient,
    Unauthorized,
)
from core.graph_session import GraphSession
from core.models import ErrorTag

USER_FIELDS = ["id", "displayName", "givenName", "surname", "mail",
               "userPrincipalName", "accountEnabled"]
SIGNIN_FIELDS = ["id", "signInActivity"]
GROUP_FIELDS = ["id", "displayName", "mail"]
MEMBER_FIELDS = ["id", "mail", "userPrincipalName", "accountEnabled"]
USER_ODATA_TYPE = "#microsoft.graph.user"

REQUIRED_SCOPES = ["User.Read.All", "AuditLog.Read.All", "GroupMember.Read.All"]


@dataclass
class FetchResult:
    """Raw Graph user data plus the most attempts any request needed"""
    data: Dict[str, Any]
    attempts: int


def _odata_escape(value: str) -> str:
    # OData single quotes are escaped by doubling them
    return value.replace("'", "''")


class GraphClient:
    """Thin Graph wrapper with retry/backoff and error classification"""

    def __init__(self, session: GraphSession, max_attempts: int = 3,
                 base_delay: float = 2.0, sleep: Callable[[float], None] = time.sleep):
        self.session = session
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.sleep = sleep
        self.logger = logging.getLogger(__name__)

    def fetch_user_by_identifier(self, identifier: str) -> FetchResult:
        """
        Fetch a user's profile and, for enabled accounts, their sign-in activity.

        Raises:
            NotFound: no account matches the identifier
            Forbidden: caller cannot read users or sign-in activity
            Throttled, Transient: retries exhausted
        """
        user_url = f"{self.session.base_url}/users/{quote(identifier, safe='@')}"

        user, attempts = self._get_with_retry(
            user_url, {"$select": ",".join(USER_FIELDS)}, identifier,
            not_found_tag=ErrorTag.USER_NOT_FOUND,
        )

        # Disabled accounts classify as not-recent without sign-in data
        if user.get("accountEnabled"):
            try:
                activity, signin_attempts = self._get_with_retry(
                    user_url, {"$select": ",".join(SIGNIN_FIELDS)}, identifier,
                    not_found_tag=ErrorTag.USER_NOT_FOUND,
                )
            except Forbidden as e:
                e.tag = ErrorTag.SIGNIN_PERMISSIONS_MISSING
                raise
            user["signInActivity"] = activity.get("signInActivity")
            attempts = max(attempts, signin_attempts)

        self.logger.debug(f"Found user {identifier} in Graph")
        return FetchResult(data=user, attempts=attempts)

    def find_group(self, group_identifier: str) -> Dict[str, Any]:
        """Resolve a group by exact mail match, falling back to exact displayName"""
        escaped = _odata_escape(group_identifier)
        url = f"{self.session.base_url}/groups"
        select = ",".join(GROUP_FIELDS)

        if "@" in group_identifier:
            matches = self._get_all_pages(
                url, {"$select": select, "$filter": f"mail eq '{escaped}'"}, group_identifier
            )
            if matches:
                return matches[0]

        matches = self._get_all_pages(
            url, {"$select": select, "$filter": f"displayName eq '{escaped}'"}, group_identifier
        )
        if not matches:
            raise NotFound(f"No group found matching '{group_identifier}'",
                           tag=ErrorTag.GROUP_NOT_FOUND, status_code=404)
        if len(matches) > 1:
            ids = ", ".join(g.get("id", "?") for g in matches)
            self.logger.warning(f"Multiple groups named '{group_identifier}', using first match (candidates: {ids})")
        return matches[0]

    def fetch_group_members(self, group_id: str) -> List[str]:
        """Return identifiers of enabled user members, in API order"""
        url = f"{self.session.base_url}/groups/{quote(group_id)}/members"
        params = {"$select": ",".join(MEMBER_FIELDS), "$top": "999"}

        members = self._get_all_pages(url, params, group_id, not_found_tag=ErrorTag.GROUP_NOT_FOUND)

        identifiers = []
        for member in members:
            if member.get("@odata.type") != USER_ODATA_TYPE:
                continue
            if member.get("accountEnabled") is not True:
                continue
            identifier = member.get("mail") or member.get("userPrincipalName")
            if identifier:
                identifiers.append(identifier)

        self.logger.info(f"Group {group_id}: {len(identifiers)} enabled user member(s) of {len(members)} total")
        return identifiers

    def check_permissions(self) -> List[str]:
        """Return required scopes missing from the current token (diagnostic only)"""
        granted = set(self.session.granted_scopes)
        # Directory.Read.All covers user and group reads
        if "Directory.Read.All" in granted:
            granted.update({"User.Read.All", "GroupMember.Read.All"})
        return [scope for scope in REQUIRED_SCOPES if scope not in granted]

    def _get_all_pages(self, url: str, params: Optional[Dict[str, str]], context: str,
                       not_found_tag: ErrorTag = ErrorTag.UNKNOWN) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        next_url: Optional[str] = url
        # nextLink already carries the query parameters
        current_params = params
        while next_url:
            data, _ = self._get_with_retry(next_url, current_params, context, not_found_tag)
            results.extend(data.get("value", []))
            next_url = data.get("@odata.nextLink")
            current_params = None
        return results

    def _get_with_retry(self, url: str, params: Optional[Dict[str, str]], context: str,
                        not_found_tag: ErrorTag = ErrorTag.UNKNOWN):
        """GET with up to max_attempts tries, doubling the delay after each retryable failure"""
        delay = self.base_delay

        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._get_once(url, params, context, not_found_tag), attempt
            except GraphApiError as e:
                e.attempts = attempt
                if not e.retryable or attempt >= self.max_attempts:
                    raise

                wait = max(delay, e.retry_after or 0)
                self.logger.warning(
                    f"{e.tag.value} for {context} (attempt {attempt}/{self.max_attempts}) - "
                    f"waiting {wait:g} seconds"
                )
                self.sleep(wait)
                delay *= 2

    def _get_once(self, url: str, params: Optional[Dict[str, str]], context: str,
                  not_found_tag: ErrorTag) -> Dict[str, Any]:
        try:
            response = self.session.get(url, params=params)
        except requests.exceptions.RequestException as e:
            raise Transient(f"Network error for {context}: {e}")

        status = response.status_code
        if status < 400:
            try:
                return response.json()
            except ValueError as e:
                # Truncated or non-JSON body; worth another attempt
                raise Transient(f"Unreadable response for {context}: {e}", status_code=status)

        message = f"{status} for {context}: {_error_message(response)}"

        if status == 404:
            raise NotFound(message, tag=not_found_tag, status_code=status)
        if status == 403:
            raise Forbidden(message, status_code=status)
        if status == 401:
            raise Unauthorized(message, status_code=status)
        if status == 429:
            raise Throttled(message, status_code=status, retry_after=_retry_after(response))
        if status >= 500:
            raise Transient(message, status_code=status, retry_after=_retry_after(response))
        raise GraphApiError(message, status_code=status)


def _error_message(response) -> str:
    try:
        details = response.json()
    except ValueError:
        return "No details"
    error = details.get("error") if isinstance(details, dict) else None
    if isinstance(error, dict):
        return f"{error.get('code', 'Unknown')} - {error.get('message', 'No details')}"
    return "No details"


def _retry_after(response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
