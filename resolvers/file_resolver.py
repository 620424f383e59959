# =============================================================================
# resolvers/file_resolver.py - Delimited / spreadsheet file resolver
# =============================================================================

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd

from core.errors import SchemaError, ValidationError
from core.models import UserRecord
from resolvers.base_resolver import BaseInputResolver
from utils.csv_utils import CSVHandler


class FileInputResolver(BaseInputResolver):
    """Reads users from a CSV or Excel file with a recognised email column"""

    # Column candidates, first match wins (case-sensitive)
    IDENTIFIER_COLUMNS = ['Email', 'EmailAddress', 'UserPrincipalName', 'Mail',
                          'E-mail', 'UPN', 'PrimaryEmail']
    FIRSTNAME_COLUMNS = ['FirstName', 'First Name', 'GivenName', 'Given Name', 'First']
    LASTNAME_COLUMNS = ['LastName', 'Last Name', 'Surname', 'Last']

    EXCEL_EXTENSIONS = {'.xlsx'}

    def __init__(self, file_path: str, sheet_name: Optional[str] = None):
        super().__init__()
        self.file_path = file_path
        self.sheet_name = sheet_name
        self.identifier_column: Optional[str] = None

    @property
    def source_description(self) -> str:
        return f"file '{self.file_path}'"

    def resolve(self) -> List[UserRecord]:
        """Parse the file and return one UserRecord per non-blank identifier row"""
        path = Path(self.file_path)
        if not path.is_file():
            raise ValidationError(f"Input file not found: {self.file_path}")
        if path.stat().st_size == 0:
            raise ValidationError(f"Input file is empty: {self.file_path}")

        if path.suffix.lower() == '.xls':
            raise ValidationError(f"Legacy .xls workbooks are not supported, save {self.file_path} as .xlsx or .csv")

        if path.suffix.lower() in self.EXCEL_EXTENSIONS:
            rows, headers = self.read_excel(path)
        else:
            rows, headers = CSVHandler.read_csv(str(path))

        self.identifier_column = self.find_column(headers, self.IDENTIFIER_COLUMNS)
        if self.identifier_column is None:
            raise SchemaError(
                f"No email column found in {self.file_path}. "
                f"Expected one of: {', '.join(self.IDENTIFIER_COLUMNS)}"
            )
        if not rows:
            raise ValidationError(f"Input file has a header but no data rows: {self.file_path}")

        first_column = self.find_column(headers, self.FIRSTNAME_COLUMNS)
        last_column = self.find_column(headers, self.LASTNAME_COLUMNS)
        self.logger.info(
            f"Using column '{self.identifier_column}' for identifiers "
            f"(first name: {first_column or 'none'}, last name: {last_column or 'none'})"
        )

        users = []
        self.skipped_rows = 0
        for row in rows:
            identifier = (row.get(self.identifier_column) or '').strip()
            if not identifier:
                self.skipped_rows += 1
                continue

            users.append(UserRecord(
                identifier=identifier,
                first_name_hint=(row.get(first_column) or '').strip() if first_column else '',
                last_name_hint=(row.get(last_column) or '').strip() if last_column else '',
            ))

        if self.skipped_rows:
            self.logger.warning(f"Skipped {self.skipped_rows} row(s) with a blank identifier")
        self.logger.info(f"Resolved {len(users)} user(s) from {self.source_description}")
        return users

    def read_excel(self, path: Path) -> Tuple[List[Dict[str, str]], List[str]]:
        """Read the first (or named) sheet with every cell as text"""
        try:
            frame = pd.read_excel(path, sheet_name=self.sheet_name or 0, dtype=str)
        except ValueError as e:
            raise ValidationError(f"Could not read spreadsheet {path}: {e}")

        frame = frame.fillna('')
        frame.columns = [str(c).strip() for c in frame.columns]
        headers = list(frame.columns)
        self.logger.info(f"Loaded {len(frame)} rows from Excel file")
        return frame.to_dict(orient='records'), headers

    @staticmethod
    def find_column(headers: List[str], candidates: List[str]) -> Optional[str]:
        """Return the first candidate present in headers"""
        for candidate in candidates:
            if candidate in headers:
                return candidate
        return None
