"""
Lifecycle reconciliation of multipass instances.

Maps the create / read / update / delete / import verbs of a declarative
host onto ordered multipass invocations:

    Absent -> Creating -> Present(Running|Stopped|Suspended) -> Deleting -> Absent

The reconciler keeps no state between calls and takes no locks. Races on
one name are settled by multipass itself, which accepts a single launch
per name and rejects the others as duplicates.
"""

import logging
from typing import List, Optional

from multipass_reconciler.config import (
    DEFAULT_LIMITS,
    ExecutorConfig,
    Settings,
    ValidationLimits,
)
from multipass_reconciler.errors import NotFoundError, PurgeError, ReplacementRequiredError
from multipass_reconciler.models import IMMUTABLE_FIELDS, LaunchOptions, VmRecord, VmSpec
from multipass_reconciler.multipass.client import MultipassClient
from multipass_reconciler.multipass.executor import CommandExecutor
from multipass_reconciler.registry import InstanceRegistry
from multipass_reconciler.validation import validate_name, validate_spec

logger = logging.getLogger(__name__)


def replacement_fields(current: VmSpec, desired: VmSpec) -> List[str]:
    """Immutable fields whose value differs between two specs."""
    return [f for f in IMMUTABLE_FIELDS if getattr(current, f) != getattr(desired, f)]


class InstanceReconciler:
    """
    Drives multipass instances towards their declared spec.

    Every verb re-reads state from multipass; no record is ever cached.
    """

    def __init__(
        self,
        client: Optional[MultipassClient] = None,
        limits: ValidationLimits = DEFAULT_LIMITS,
    ):
        self.client = client or MultipassClient()
        self.limits = limits
        self.registry = InstanceRegistry(self.client)

    @classmethod
    def from_settings(cls, settings: Settings) -> "InstanceReconciler":
        executor = CommandExecutor(ExecutorConfig.from_settings(settings))
        return cls(MultipassClient(executor), ValidationLimits.from_settings(settings))

    async def create(self, spec: VmSpec) -> VmRecord:
        """
        Launch a new instance and return its observed state.

        Raises:
            ValidationError: a field of the VmSpec is invalid; nothing was launched
            ConflictError: an instance with this name already exists
            ExternalToolError: launch failed, output embedded verbatim
        """
        validate_spec(spec, self.limits)
        opts = LaunchOptions.from_spec(spec)

        logger.info(f"Launching multipass instance {spec.name}")
        await self.client.launch(opts)

        record = await self.read(spec.name)
        logger.info(f"Created multipass instance {spec.name} ({record.state.value})")
        return record

    async def read(self, name: str) -> VmRecord:
        """Current observed state; raises NotFoundError when the instance is gone."""
        return await self.registry.get(name)

    async def refresh(self, name: str) -> Optional[VmRecord]:
        """
        Current observed state, or None once the instance no longer exists.

        A None result tells the caller to drop its persisted record; it is a
        convergence signal, not a failure.
        """
        record = await self.registry.find(name)
        if record is None:
            logger.info(f"Instance {name} no longer exists, removing from state")
        return record

    async def update(self, current: VmSpec, desired: VmSpec) -> VmSpec:
        """
        Accept a plan that leaves every immutable field as it is.

        No multipass command is run. Any changed field can only be applied by
        destroying and recreating the instance, which is reported to the
        caller instead.

        Raises:
            ReplacementRequiredError: an immutable field changed
        """
        changed = replacement_fields(current, desired)
        if changed:
            raise ReplacementRequiredError(current.name, changed)
        return desired

    async def delete(self, name: str) -> None:
        """
        Delete an instance and purge it.

        Raises:
            NotFoundError: multipass does not know the instance
            ExternalToolError: delete failed; purge was not attempted
            PurgeError: delete succeeded but purge failed
        """
        logger.info(f"Deleting multipass instance {name}")
        await self.client.delete_instance(name)

        result = await self.client.purge()
        if not result.succeeded:
            logger.warning(f"Instance {name} deleted but purge failed: {result.output}")
            raise PurgeError(
                name,
                args=result.args,
                exit_code=result.exit_code,
                output=result.output,
                cause=result.cause,
            )
        logger.info(f"Deleted multipass instance {name}")

    async def import_instance(self, name: str) -> VmRecord:
        """
        Adopt an existing instance by name.

        Raises:
            ValidationError: the name is not a valid instance name
            NotFoundError: no instance with that name exists
        """
        validate_name(name, self.limits)
        try:
            return await self.read(name)
        except NotFoundError:
            logger.warning(f"Cannot import instance {name}: not found")
            raise

    async def start(self, name: str) -> None:
        await self.client.start_instance(name)

    async def stop(self, name: str) -> None:
        await self.client.stop_instance(name)

    async def restart(self, name: str) -> None:
        await self.client.restart_instance(name)

    async def suspend(self, name: str) -> None:
        await self.client.suspend_instance(name)
