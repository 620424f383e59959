"""Tests for report export, backups and the temp-dir fallback."""

import csv
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from core.errors import WriteError
from core.models import (
    BatchReport,
    ClassifiedRecord,
    ErrorTag,
    SignInLookupResult,
    UserRecord,
)
from utils.csv_utils import ReportWriter


class TickingClock:
    def __init__(self):
        self.current = datetime(2024, 6, 1, 9, 0, 0)

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def report(now):
    records = [
        ClassifiedRecord(SignInLookupResult.success(
            "Ada", "Lovelace", "ada@x.com", now - timedelta(days=3), True), True),
        ClassifiedRecord(SignInLookupResult.success(
            "Bob", "Stale", "bob@x.com", now - timedelta(days=60), True), False),
        ClassifiedRecord(SignInLookupResult.success(
            "Cy", "Never", "cy@x.com", None, True), False),
        ClassifiedRecord(SignInLookupResult.success(
            "Di", "Off", "di@x.com", None, False), False),
        ClassifiedRecord(SignInLookupResult.error(
            UserRecord("ed@x.com", "Ed", ""), ErrorTag.USER_NOT_FOUND, "404 for ed@x.com"), False),
    ]
    return BatchReport(threshold_days=30, generated_at=now, records=records)


def read_rows(path):
    with open(path, newline="", encoding="utf-8") as file:
        return list(csv.DictReader(file))


def test_columns_and_rendering(tmp_path, report):
    path = ReportWriter().write(report, str(tmp_path / "out.csv"))
    rows = read_rows(path)

    assert list(rows[0].keys()) == ["FirstName", "LastName", "EmailAddress",
                                    "LastSignInDateTime", "SignedInLast30Days", "Details"]
    assert rows[0]["LastSignInDateTime"] == "2024-05-29 12:00:00"
    assert rows[0]["SignedInLast30Days"] == "True"
    assert rows[1]["SignedInLast30Days"] == "False"
    assert rows[2]["LastSignInDateTime"] == "Never"
    assert rows[3]["LastSignInDateTime"] == "Account Disabled"
    assert rows[4]["LastSignInDateTime"] == "Error"
    assert rows[4]["Details"] == "UserNotFound: 404 for ed@x.com"
    assert (rows[4]["FirstName"], rows[4]["LastName"]) == ("Ed", "Unknown")


def test_existing_file_is_backed_up(tmp_path, report):
    target = tmp_path / "out.csv"
    target.write_text("old,content\n", encoding="utf-8")
    writer = ReportWriter(clock=TickingClock())

    written = writer.write(report, str(target))

    assert written == target
    assert len(read_rows(target)) == len(report.records)
    backups = list(tmp_path.glob("out_backup_*.csv"))
    assert len(backups) == 1
    assert "20240601_090001" in backups[0].name
    assert backups[0].read_text(encoding="utf-8") == "old,content\n"


def test_no_backup_without_existing_file(tmp_path, report):
    ReportWriter().write(report, str(tmp_path / "out.csv"))

    assert list(tmp_path.glob("*_backup_*")) == []


def test_falls_back_to_temp_dir(tmp_path, report):
    missing_dir = tmp_path / "does" / "not" / "exist" / "out.csv"

    written = ReportWriter().write(report, str(missing_dir))

    try:
        assert written.parent == Path(tempfile.gettempdir())
        assert written.name.startswith("out_")
        assert len(read_rows(written)) == len(report.records)
    finally:
        written.unlink()


def test_write_error_when_fallback_fails(tmp_path, report, monkeypatch):
    monkeypatch.setattr(tempfile, "gettempdir", lambda: str(tmp_path / "also" / "missing"))

    with pytest.raises(WriteError) as excinfo:
        ReportWriter().write(report, str(tmp_path / "nope" / "out.csv"))

    assert excinfo.value.original_error
    assert excinfo.value.fallback_error


def test_round_trip_classification(tmp_path, report):
    path = ReportWriter().write(report, str(tmp_path / "out.csv"))

    exported = {row["EmailAddress"]: row["SignedInLast30Days"] == "True" for row in read_rows(path)}

    for record in report.records:
        if record.result.is_success:
            assert exported[record.result.email_address] is record.within_threshold

