"""
Read-only view of the instances multipass knows about.

Answers "what exists now" for one name or for everything. Nothing is
cached; every call asks multipass again.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from multipass_reconciler.models import VmRecord
from multipass_reconciler.multipass.client import MultipassClient

logger = logging.getLogger(__name__)

ALL_INSTANCES_ID = "all-instances"


@dataclass
class InstanceQuery:
    """Result of a registry query: one instance by name, or all of them."""

    id: str
    instance: Optional[VmRecord] = None
    instances: List[VmRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "instance": self.instance.summary() if self.instance else None,
            "instances": [record.summary() for record in self.instances],
        }


class InstanceRegistry:
    """Stateless query surface over the multipass client."""

    def __init__(self, client: Optional[MultipassClient] = None):
        self.client = client or MultipassClient()

    async def get(self, name: str) -> VmRecord:
        """Current record for one instance; raises NotFoundError if absent."""
        return await self.client.get_instance(name)

    async def find(self, name: str) -> Optional[VmRecord]:
        """Current record for one instance, or None if absent."""
        return await self.client.find_instance(name)

    async def list_all(self) -> List[VmRecord]:
        """Every instance multipass reports, including stopped and deleted ones."""
        return await self.client.list_instances()

    async def query(self, name: Optional[str] = None) -> InstanceQuery:
        """
        Look up a single instance when a name is given, otherwise list all.

        Args:
            name: Instance to look up; None or empty lists everything

        Returns:
            InstanceQuery identified by the name, or by "all-instances"
        """
        if name:
            logger.debug(f"Reading multipass instance {name}")
            return InstanceQuery(id=name, instance=await self.get(name))

        logger.debug("Listing all multipass instances")
        return InstanceQuery(id=ALL_INSTANCES_ID, instances=await self.list_all())
