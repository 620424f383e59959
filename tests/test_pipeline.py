"""End-to-end runs with a fake Graph session."""

import csv

import pytest

from conftest import FakeGraphSession, FakeResponse, signin_payload, user_payload
from core.errors import SchemaError, ValidationError
from core.pipeline import FILE_MODE, GROUP_MODE, run_sign_in_report
from utils.config import Config


@pytest.fixture
def config(monkeypatch):
    monkeypatch.setenv("CLIENT_ID", "client")
    monkeypatch.setenv("DEFAULT_THRESHOLD_DAYS", "30")
    monkeypatch.setenv("REQUEST_PAUSE_MS", "0")
    return Config()


def user_handler(url, params):
    mail = url.split("/users/", 1)[1]
    if "signInActivity" in params["$select"]:
        return FakeResponse(200, signin_payload("2000-01-01T00:00:00Z"))
    if mail.startswith("missing"):
        return FakeResponse(404)
    return FakeResponse(200, user_payload(mail))


def test_schema_error_makes_no_api_calls(tmp_path, config):
    source = tmp_path / "in.csv"
    source.write_text("Username\njdoe\n", encoding="utf-8")
    session = FakeGraphSession(script=[])

    with pytest.raises(SchemaError):
        run_sign_in_report(config, FILE_MODE, str(source), str(tmp_path / "out.csv"), session=session)

    assert session.entered is False
    assert session.calls == []


def test_file_run_writes_report(tmp_path, config):
    source = tmp_path / "in.csv"
    source.write_text("Email,FirstName\na@x.com,Al\n,\nmissing@x.com,Mo\n", encoding="utf-8")
    session = FakeGraphSession(handler=user_handler)

    result = run_sign_in_report(config, FILE_MODE, str(source), str(tmp_path / "out.csv"),
                                threshold_days=500, session=session)

    assert session.entered and session.exited
    assert result.report.threshold_days == 90
    assert result.skipped_rows == 1
    assert result.used_fallback is False
    with open(result.output_path, newline="", encoding="utf-8") as file:
        rows = list(csv.DictReader(file))
    assert [r["EmailAddress"] for r in rows] == ["a@x.com", "missing@x.com"]
    assert rows[0]["SignedInLast90Days"] == "False"
    assert rows[1]["Details"].startswith("UserNotFound")
    assert rows[1]["FirstName"] == "Mo"


def test_session_released_on_unexpected_error(tmp_path, config):
    source = tmp_path / "in.csv"
    source.write_text("Email\na@x.com\n", encoding="utf-8")

    def explode(url, params):
        raise RuntimeError("boom")

    session = FakeGraphSession(handler=explode)

    with pytest.raises(RuntimeError):
        run_sign_in_report(config, FILE_MODE, str(source), str(tmp_path / "out.csv"), session=session)

    assert session.exited is True


def test_group_run(tmp_path, config):
    def handler(url, params):
        if url.endswith("/groups"):
            return FakeResponse(200, {"value": [{"id": "g1", "displayName": "Sales"}]})
        if url.endswith("/groups/g1/members"):
            return FakeResponse(200, {"value": [
                {"@odata.type": "#microsoft.graph.user", "mail": "a@x.com", "accountEnabled": True},
            ]})
        return user_handler(url, params)

    session = FakeGraphSession(handler=handler, scopes=["User.Read.All"])

    result = run_sign_in_report(config, GROUP_MODE, "Sales", str(tmp_path / "out.csv"),
                                check_permissions=True, session=session)

    assert [r.result.email_address for r in result.report.records] == ["a@x.com"]
    assert result.missing_permissions == ["AuditLog.Read.All", "GroupMember.Read.All"]
    assert session.exited is True


@pytest.mark.parametrize("mode,source", [(GROUP_MODE, "  "), ("ldap", "x")])
def test_bad_mode_or_group_fails_before_connecting(tmp_path, config, mode, source):
    session = FakeGraphSession(script=[])

    with pytest.raises(ValidationError):
        run_sign_in_report(config, mode, source, str(tmp_path / "out.csv"), session=session)

    assert session.entered is False
