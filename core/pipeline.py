# =============================================================================
# core/pipeline.py - End-to-end sign-in report run
# =============================================================================

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from core.batch_runner import BatchRunner, ProgressCallback
from core.classifier import clamp_threshold
from core.errors import ValidationError
from core.graph_client import GraphClient
from core.graph_session import GraphSession
from core.models import BatchReport, UserRecord
from resolvers.file_resolver import FileInputResolver
from resolvers.group_resolver import GroupInputResolver
from utils.config import Config
from utils.csv_utils import ReportWriter

FILE_MODE = "file"
GROUP_MODE = "group"

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """What a finished run produced"""
    report: BatchReport
    output_path: Path
    requested_path: Path
    skipped_rows: int = 0
    missing_permissions: List[str] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.output_path != self.requested_path


def build_session(config: Config, prompt: Callable[[str], None] = print) -> GraphSession:
    """Create an (unconnected) Graph session from configuration"""
    return GraphSession(
        client_id=config.client_id,
        tenant_id=config.tenant_id,
        client_secret=config.client_secret,
        base_url=config.graph_base_url,
        auth_timeout=config.auth_timeout_seconds,
        max_attempts=config.auth_max_attempts,
        request_timeout=config.request_timeout_seconds,
        prompt=prompt,
    )


def run_sign_in_report(config: Config, mode: str, source: str, output_path: str,
                       threshold_days: Optional[int] = None,
                       progress_callback: Optional[ProgressCallback] = None,
                       check_permissions: bool = False,
                       pause_ms: Optional[int] = None,
                       session: Optional[GraphSession] = None,
                       writer: Optional[ReportWriter] = None) -> RunResult:
    """
    Resolve users, look each one up, and write the report.

    File input is parsed before signing in, so a bad file fails without any
    API call. The Graph session is always disconnected before returning.
    """
    threshold = clamp_threshold(threshold_days if threshold_days is not None
                                else config.default_threshold_days)
    pause = config.request_pause_ms if pause_ms is None else pause_ms

    users: List[UserRecord] = []
    skipped_rows = 0
    if mode == FILE_MODE:
        file_resolver = FileInputResolver(source)
        users = file_resolver.resolve()
        skipped_rows = file_resolver.skipped_rows
    elif mode == GROUP_MODE:
        if not (source or '').strip():
            raise ValidationError("Group identifier must not be empty")
    else:
        raise ValidationError(f"Unknown input mode: {mode}")

    session = session or build_session(config)
    missing: List[str] = []

    with session:
        client = GraphClient(session)

        if check_permissions:
            missing = client.check_permissions()
            if missing:
                logger.warning(f"Token is missing permission(s): {', '.join(missing)}")
            else:
                logger.info("All required permissions are present")

        if mode == GROUP_MODE:
            users = GroupInputResolver(client, source).resolve()

        runner = BatchRunner(client, threshold, pause_seconds=pause / 1000.0)
        report = runner.run(users, progress_callback)

    writer = writer or ReportWriter()
    written = writer.write(report, output_path)

    return RunResult(
        report=report,
        output_path=written,
        requested_path=Path(output_path),
        skipped_rows=skipped_rows,
        missing_permissions=missing,
    )
