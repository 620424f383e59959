# =============================================================================
# utils/csv_utils.py - CSV reading and report export
# =============================================================================

import csv
import logging
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from core.errors import ValidationError, WriteError
from core.models import BatchReport, ClassifiedRecord, LookupStatus

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
FILE_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S_%f"


class CSVHandler:
    """Utilities for reading CSV files"""

    @staticmethod
    def read_csv(file_path: str, encoding: str = 'utf-8-sig',
                 delimiter: str = ',') -> Tuple[List[Dict[str, str]], List[str]]:
        """Read CSV file and return (rows as dictionaries, stripped headers)"""
        logger = logging.getLogger(__name__)

        try:
            with open(file_path, 'r', newline='', encoding=encoding) as file:
                reader = csv.reader(file, delimiter=delimiter)
                try:
                    headers = [h.strip() for h in next(reader)]
                except StopIteration:
                    raise ValidationError(f"Input file {file_path} is empty")

                logger.info(f"CSV Headers: {headers[:10]}")
                logger.info(f"Total columns: {len(headers)}")

                data = []
                for values in reader:
                    if not any(v.strip() for v in values):
                        # Fully blank line - keep the slot so row order and skip counts stay honest
                        data.append({h: '' for h in headers})
                        continue
                    padded = values + [''] * (len(headers) - len(values))
                    data.append(dict(zip(headers, padded)))

                logger.info(f"Successfully read {len(data)} records from {file_path}")
                return data, headers

        except FileNotFoundError:
            logger.error(f"Input file {file_path} not found")
            raise ValidationError(f"Input file not found: {file_path}")
        except UnicodeDecodeError as e:
            logger.error(f"Error reading CSV: {e}")
            raise ValidationError(f"Input file {file_path} is not valid {encoding} text: {e}")


class ReportWriter:
    """Writes a BatchReport to CSV with backup and temp-dir fallback"""

    def __init__(self, clock=datetime.now):
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def threshold_column(threshold_days: int) -> str:
        return f"SignedInLast{threshold_days}Days"

    def get_output_fieldnames(self, threshold_days: int) -> List[str]:
        """Get fieldnames for the report"""
        return ['FirstName', 'LastName', 'EmailAddress', 'LastSignInDateTime',
                self.threshold_column(threshold_days), 'Details']

    def record_to_dict(self, record: ClassifiedRecord, threshold_days: int) -> Dict[str, str]:
        """Convert ClassifiedRecord to a CSV row"""
        result = record.result
        return {
            'FirstName': result.first_name,
            'LastName': result.last_name,
            'EmailAddress': result.email_address,
            'LastSignInDateTime': self.format_last_sign_in(record),
            self.threshold_column(threshold_days): str(record.within_threshold),
            'Details': self.format_details(record, threshold_days),
        }

    @staticmethod
    def format_last_sign_in(record: ClassifiedRecord) -> str:
        result = record.result
        if result.status is LookupStatus.ERROR:
            return "Error"
        if not result.account_enabled:
            return "Account Disabled"
        if result.last_sign_in_at is None:
            return "Never"
        return result.last_sign_in_at.strftime(DATETIME_FORMAT)

    @staticmethod
    def format_details(record: ClassifiedRecord, threshold_days: int) -> str:
        result = record.result
        if result.status is LookupStatus.ERROR:
            tag = result.error_tag.value if result.error_tag else "Unknown"
            return f"{tag}: {result.error_detail}" if result.error_detail else tag
        if not result.account_enabled:
            return "Account is disabled"
        if result.last_sign_in_at is None:
            return "No sign-in recorded"
        if record.within_threshold:
            return f"Signed in within the last {threshold_days} days"
        return f"No sign-in within the last {threshold_days} days"

    def write(self, report: BatchReport, output_path: str) -> Path:
        """
        Write the report, returning the path actually written.

        An existing file at output_path is first copied to a timestamped
        backup. If the write fails, one attempt is made in the system temp
        directory; if that fails too, WriteError carries both errors.
        """
        path = Path(output_path)
        fieldnames = self.get_output_fieldnames(report.threshold_days)
        rows = [self.record_to_dict(r, report.threshold_days) for r in report.records]

        if path.exists():
            self.backup_existing(path)

        try:
            self._write_rows(path, fieldnames, rows)
            return path
        except OSError as e:
            original_error = str(e)
            self.logger.error(f"Error writing report to {path}: {e}")

        fallback = Path(tempfile.gettempdir()) / f"{path.stem}_{self._timestamp()}{path.suffix or '.csv'}"
        try:
            self._write_rows(fallback, fieldnames, rows)
        except OSError as e:
            raise WriteError(
                f"Could not write report to {path} ({original_error}) "
                f"or fallback {fallback} ({e})",
                original_error=original_error,
                fallback_error=str(e),
            )

        self.logger.warning(f"Report written to fallback location {fallback}")
        return fallback

    def backup_existing(self, path: Path) -> Optional[Path]:
        """Copy an existing report aside; failures are logged, not raised"""
        backup = path.with_name(f"{path.stem}_backup_{self._timestamp()}{path.suffix}")
        try:
            shutil.copy2(path, backup)
        except OSError as e:
            self.logger.warning(f"Could not back up existing report {path}: {e}")
            return None

        self.logger.info(f"Backed up existing report to {backup}")
        return backup

    def _write_rows(self, path: Path, fieldnames: List[str], rows: List[Dict[str, str]]) -> None:
        with open(path, 'w', newline='', encoding='utf-8') as file:
            writer = csv.DictWriter(file, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows)

        self.logger.info(f"Successfully wrote {len(rows)} records to {path}")

    def _timestamp(self) -> str:
        return self.clock().strftime(FILE_TIMESTAMP_FORMAT)
