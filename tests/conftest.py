"""Shared fakes for Graph session and HTTP responses."""

from datetime import datetime, timezone

import pytest


class FakeResponse:
    def __init__(self, status_code=200, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.headers = headers or {}

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeGraphSession:
    """Stands in for GraphSession; answers GETs from a handler or a script."""

    base_url = "https://graph.example/v1.0"

    def __init__(self, handler=None, script=None, scopes=None):
        self.handler = handler
        self.script = list(script or [])
        self.calls = []
        self.granted_scopes = scopes or []
        self.entered = False
        self.exited = False

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.exited = True

    def get(self, url, params=None, headers=None):
        self.calls.append((url, params))
        if self.handler is not None:
            outcome = self.handler(url, params)
        else:
            outcome = self.script.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def user_payload(mail, enabled=True, given="Ada", surname="Lovelace"):
    return {
        "id": f"id-{mail}",
        "displayName": f"{given} {surname}",
        "givenName": given,
        "surname": surname,
        "mail": mail,
        "userPrincipalName": mail,
        "accountEnabled": enabled,
    }


def signin_payload(last_sign_in):
    return {"id": "x", "signInActivity": {"lastSignInDateTime": last_sign_in}}


@pytest.fixture
def now():
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def no_sleep():
    delays = []
    return delays, delays.append
