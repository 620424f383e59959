# =============================================================================
# core/batch_runner.py - Sequential sign-in lookup workflow
# =============================================================================

import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from core.classifier import classify, parse_graph_datetime
from core.errors import GraphApiError
from core.graph_client import GraphClient
from core.models import (
    BatchReport,
    ClassifiedRecord,
    ErrorTag,
    RecordState,
    SignInLookupResult,
    UserRecord,
)

# local@domain with at least one dot in the domain
_IDENTIFIER_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ProgressCallback = Callable[[int, int, str], Optional[bool]]


def is_valid_identifier(value: str) -> bool:
    """Basic email-shape check"""
    return bool(value) and bool(_IDENTIFIER_PATTERN.match(value))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BatchRunner:
    """Looks up and classifies users one at a time, in input order"""

    def __init__(self, client: GraphClient, threshold_days: int,
                 pause_seconds: float = 0.15,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], datetime] = _utc_now):
        self.client = client
        self.threshold_days = threshold_days
        self.pause_seconds = pause_seconds
        self.sleep = sleep
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    def run(self, users: List[UserRecord],
            progress_callback: Optional[ProgressCallback] = None) -> BatchReport:
        """
        Process every user and return the ordered report.

        The progress callback receives ``(current_index, total_count, identifier)``
        after each user. Returning ``False`` from it stops the run after the
        current user; the records gathered so far are returned.
        """
        total = len(users)
        now = self.clock()
        report = BatchReport(threshold_days=self.threshold_days, generated_at=now)
        self.logger.info(f"Starting sign-in lookup for {total} user(s), threshold {self.threshold_days} day(s)")

        for index, user in enumerate(users, start=1):
            record = self.process_user(user, now)
            report.records.append(record)

            if progress_callback is not None:
                if progress_callback(index, total, user.identifier) is False:
                    self.logger.warning(f"Run cancelled after {index}/{total} user(s)")
                    report.cancelled = True
                    break

            if index < total and self.pause_seconds > 0:
                self.sleep(self.pause_seconds)

        self.log_statistics(report)
        return report

    def process_user(self, user: UserRecord, now: datetime) -> ClassifiedRecord:
        """Fetch and classify a single user; failures become ERROR records"""
        identifier = user.identifier.strip()

        if not is_valid_identifier(identifier):
            self.logger.warning(f"Skipping lookup for invalid identifier '{identifier}'")
            result = SignInLookupResult.error(user, ErrorTag.INVALID_IDENTIFIER,
                                              "Identifier is not a valid email address", attempts=0)
            return self._record(identifier, RecordState.FAILED, result, False)

        state = RecordState.FETCHING
        self.logger.debug(f"{identifier}: {RecordState.PENDING.value} -> {state.value}")
        try:
            fetched = self.client.fetch_user_by_identifier(identifier)
        except GraphApiError as e:
            self.logger.error(f"Lookup failed for {identifier}: [{e.tag.value}] {e}")
            result = SignInLookupResult.error(user, e.tag, str(e), attempts=e.attempts)
            return self._record(identifier, RecordState.FAILED, result, False)

        state = RecordState.CLASSIFYING
        self.logger.debug(f"{identifier}: {state.value}")
        data = fetched.data
        activity = data.get("signInActivity") or {}
        try:
            last_sign_in_at = parse_graph_datetime(activity.get("lastSignInDateTime"))
        except ValueError as e:
            self.logger.error(f"Unreadable sign-in timestamp for {identifier}: {e}")
            result = SignInLookupResult.error(user, ErrorTag.UNKNOWN,
                                              f"Unreadable lastSignInDateTime: {e}",
                                              attempts=fetched.attempts)
            return self._record(identifier, RecordState.FAILED, result, False)
        account_enabled = bool(data.get("accountEnabled"))

        result = SignInLookupResult.success(
            first_name=data.get("givenName") or user.first_name_hint,
            last_name=data.get("surname") or user.last_name_hint,
            email_address=data.get("mail") or data.get("userPrincipalName") or identifier,
            last_sign_in_at=last_sign_in_at,
            account_enabled=account_enabled,
            attempts=fetched.attempts,
        )
        within = classify(last_sign_in_at, account_enabled, self.threshold_days, now)
        return self._record(identifier, RecordState.CLASSIFYING, result, within)

    def _record(self, identifier: str, from_state: RecordState,
                result: SignInLookupResult, within: bool) -> ClassifiedRecord:
        self.logger.debug(f"{identifier}: {from_state.value} -> {RecordState.RECORDED.value}")
        return ClassifiedRecord(result=result, within_threshold=within, state=RecordState.RECORDED)

    def log_statistics(self, report: BatchReport) -> None:
        """Log processing statistics"""
        summary = report.summary()
        self.logger.info(
            f"Lookup summary: total={summary.total} success={summary.success} error={summary.error} "
            f"within={summary.within_threshold} outside={summary.outside_threshold}"
        )
        self.logger.info(f"Success rate: {summary.success_rate:.1f}% ({summary.success}/{summary.total})")
