# =============================================================================
# utils/config.py - Configuration management
# =============================================================================

import os
from typing import Optional, List
from dotenv import find_dotenv, load_dotenv

from core.errors import ValidationError

DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"


class Config:
    """Configuration management"""

    def __init__(self):
        # .env is looked up from the working directory upwards
        load_dotenv(find_dotenv(usecwd=True))

    @property
    def tenant_id(self) -> str:
        return os.getenv("TENANT_ID") or "organizations"

    @property
    def client_id(self) -> Optional[str]:
        return os.getenv("CLIENT_ID")

    @property
    def client_secret(self) -> Optional[str]:
        return os.getenv("CLIENT_SECRET")

    @property
    def graph_base_url(self) -> str:
        return (os.getenv("GRAPH_BASE_URL") or DEFAULT_GRAPH_BASE_URL).rstrip("/")

    @property
    def auth_timeout_seconds(self) -> int:
        return self._get_int("AUTH_TIMEOUT_SECONDS", 30)

    @property
    def auth_max_attempts(self) -> int:
        return self._get_int("AUTH_MAX_ATTEMPTS", 2)

    @property
    def request_pause_ms(self) -> int:
        return self._get_int("REQUEST_PAUSE_MS", 150)

    @property
    def request_timeout_seconds(self) -> int:
        return self._get_int("REQUEST_TIMEOUT_SECONDS", 30)

    @property
    def default_threshold_days(self) -> int:
        return self._get_int("DEFAULT_THRESHOLD_DAYS", 30)

    def validate_graph_config(self) -> bool:
        """Validate that all required Graph configuration is present"""
        return not self.get_missing_graph_vars()

    def get_missing_graph_vars(self) -> List[str]:
        """Get list of missing Graph configuration variables"""
        vars_and_names = [
            (self.client_id, "CLIENT_ID"),
        ]
        # App-only auth cannot use the multi-tenant "organizations" authority
        if self.client_secret and not os.getenv("TENANT_ID"):
            vars_and_names.append((None, "TENANT_ID"))
        return [name for var, name in vars_and_names if not var]

    @staticmethod
    def _get_int(name: str, default: int) -> int:
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError:
            raise ValidationError(f"{name} must be an integer, got {raw!r}")
        if value < 0:
            raise ValidationError(f"{name} must not be negative, got {value}")
        return value
