# =============================================================================
# core/models.py - Unified data models
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from enum import Enum

UNKNOWN_NAME = "Unknown"


class LookupStatus(Enum):
    """Outcome of a single sign-in lookup"""
    SUCCESS = "Success"
    ERROR = "Error"


class RecordState(Enum):
    """Per-identifier processing state"""
    PENDING = "pending"
    FETCHING = "fetching"
    CLASSIFYING = "classifying"
    FAILED = "failed"
    RECORDED = "recorded"


class ErrorTag(Enum):
    """Human-readable classification attached to failed lookups"""
    USER_NOT_FOUND = "UserNotFound"
    GROUP_NOT_FOUND = "GroupNotFound"
    INSUFFICIENT_PERMISSIONS = "InsufficientPermissions"
    SIGNIN_PERMISSIONS_MISSING = "SignInPermissionsMissing"
    UNAUTHORIZED = "Unauthorized"
    THROTTLED = "Throttled"
    TRANSIENT = "Transient"
    INVALID_IDENTIFIER = "InvalidIdentifier"
    UNKNOWN = "Unknown"


@dataclass
class UserRecord:
    """User to look up, with optional display-name hints from the input"""
    identifier: str
    first_name_hint: str = ""
    last_name_hint: str = ""


@dataclass(frozen=True)
class SignInLookupResult:
    """
    Fixed-shape lookup result.

    Use ``success()`` or ``error()`` to build one. An ERROR result never
    carries a sign-in timestamp and always has best-effort name fields.
    """
    first_name: str
    last_name: str
    email_address: str
    last_sign_in_at: Optional[datetime]
    account_enabled: bool
    status: LookupStatus
    error_tag: Optional[ErrorTag] = None
    error_detail: str = ""
    attempts: int = 1

    @classmethod
    def success(cls, first_name: str, last_name: str, email_address: str,
                last_sign_in_at: Optional[datetime], account_enabled: bool,
                attempts: int = 1) -> "SignInLookupResult":
        return cls(
            first_name=first_name or UNKNOWN_NAME,
            last_name=last_name or UNKNOWN_NAME,
            email_address=email_address,
            last_sign_in_at=last_sign_in_at,
            account_enabled=account_enabled,
            status=LookupStatus.SUCCESS,
            attempts=attempts,
        )

    @classmethod
    def error(cls, user: UserRecord, tag: ErrorTag, detail: str,
              attempts: int = 1) -> "SignInLookupResult":
        return cls(
            first_name=user.first_name_hint or UNKNOWN_NAME,
            last_name=user.last_name_hint or UNKNOWN_NAME,
            email_address=user.identifier,
            last_sign_in_at=None,
            account_enabled=False,
            status=LookupStatus.ERROR,
            error_tag=tag,
            error_detail=detail,
            attempts=attempts,
        )

    @property
    def is_success(self) -> bool:
        return self.status is LookupStatus.SUCCESS


@dataclass(frozen=True)
class ClassifiedRecord:
    """Lookup result plus its threshold classification"""
    result: SignInLookupResult
    within_threshold: bool
    state: RecordState = RecordState.RECORDED


@dataclass
class ReportSummary:
    """Counts derived from a BatchReport"""
    total: int = 0
    success: int = 0
    error: int = 0
    within_threshold: int = 0
    outside_threshold: int = 0

    @property
    def success_rate(self) -> float:
        """Calculate success rate percentage"""
        if self.total == 0:
            return 0.0
        return (self.success / self.total) * 100


@dataclass
class BatchReport:
    """Ordered results of one run"""
    threshold_days: int
    generated_at: datetime
    records: List[ClassifiedRecord] = field(default_factory=list)
    cancelled: bool = False

    def summary(self) -> ReportSummary:
        # Outside-threshold counts every record not within it, errors included
        successes = [r for r in self.records if r.result.is_success]
        within = [r for r in self.records if r.within_threshold]
        return ReportSummary(
            total=len(self.records),
            success=len(successes),
            error=len(self.records) - len(successes),
            within_threshold=len(within),
            outside_threshold=len(self.records) - len(within),
        )
