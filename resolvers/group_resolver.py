# =============================================================================
# resolvers/group_resolver.py - Group membership resolver
# =============================================================================

from typing import List

from core.errors import ValidationError
from core.graph_client import GraphClient
from core.models import UserRecord
from resolvers.base_resolver import BaseInputResolver


class GroupInputResolver(BaseInputResolver):
    """Resolves users from the enabled user members of a directory group"""

    def __init__(self, client: GraphClient, group_identifier: str):
        super().__init__()
        self.client = client
        self.group_identifier = (group_identifier or '').strip()
        self.group_id = None

    @property
    def source_description(self) -> str:
        return f"group '{self.group_identifier}'"

    def resolve(self) -> List[UserRecord]:
        """Look up the group by mail then display name, and list its enabled users"""
        if not self.group_identifier:
            raise ValidationError("Group identifier must not be empty")

        group = self.client.find_group(self.group_identifier)
        self.group_id = group['id']
        self.logger.info(f"Resolved {self.source_description} to group id {self.group_id}")

        identifiers = self.client.fetch_group_members(self.group_id)
        return [UserRecord(identifier=identifier) for identifier in identifiers]
