# =============================================================================
# resolvers/base_resolver.py - Abstract input resolver
# =============================================================================

from abc import ABC, abstractmethod
from typing import List
import logging

from core.models import UserRecord


class BaseInputResolver(ABC):
    """Abstract base class for input resolvers"""

    def __init__(self):
        self.skipped_rows = 0
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def resolve(self) -> List[UserRecord]:
        """Return the users to look up, in input order"""
        pass

    @property
    @abstractmethod
    def source_description(self) -> str:
        """Short description of the input, for logs and reports"""
        pass
