"""
Typed wrapper over the multipass command surface.

Builds the argument vector for each verb, runs it through the executor and
returns decoded records or raises classified errors.
"""

import logging
from typing import List, Optional, Protocol, Sequence

from multipass_reconciler.config import ExecutorConfig
from multipass_reconciler.errors import DecodeError, FailureCause, NotFoundError
from multipass_reconciler.models import LaunchOptions, VmRecord
from multipass_reconciler.multipass.decoder import decode_info, decode_list
from multipass_reconciler.multipass.executor import CommandExecutor, CommandResult
from multipass_reconciler.utils.timeparse import duration_to_seconds

logger = logging.getLogger(__name__)


class Executor(Protocol):
    """Anything that can run a multipass argument vector."""

    async def run(
        self,
        args: Sequence[str],
        *,
        timeout: Optional[float] = None,
        operation: str = "run multipass",
    ) -> CommandResult:
        ...


def build_launch_args(opts: LaunchOptions) -> List[str]:
    """Argument vector for `multipass launch`; empty optional fields are left out."""
    args = ["launch"]
    if opts.image:
        args.append(opts.image)
    if opts.name:
        args += ["--name", opts.name]
    if opts.cpu:
        args += ["--cpus", opts.cpu]
    if opts.memory:
        args += ["--memory", opts.memory]
    if opts.disk:
        args += ["--disk", opts.disk]
    if opts.cloud_init:
        args += ["--cloud-init", opts.cloud_init]
    if opts.timeout is not None:
        args += ["--timeout", str(duration_to_seconds(opts.timeout))]
    return args


class MultipassClient:
    """
    Client for the multipass CLI.

    Stateless apart from its executor; every call spawns exactly one process
    (two for delete with purge) and re-reads state from multipass.
    """

    def __init__(self, executor: Optional[Executor] = None):
        self.executor = executor or CommandExecutor()

    @classmethod
    def from_binary(cls, binary_path: str = "") -> "MultipassClient":
        return cls(CommandExecutor(ExecutorConfig(binary_path=binary_path)))

    async def launch(self, opts: LaunchOptions) -> None:
        """Create and start a new instance."""
        args = build_launch_args(opts)
        timeout = float(duration_to_seconds(opts.timeout)) if opts.timeout is not None else None
        result = await self.executor.run(args, timeout=timeout, operation="launch instance")
        result.raise_for_status("launch instance", opts.name)

    async def get_instance(self, name: str) -> VmRecord:
        """
        Get one instance by name.

        Raises:
            NotFoundError: multipass does not know the name
            PartialFailureError: multipass reported errors for the request
            DecodeError: the output was not an info document
        """
        result = await self.executor.run(
            ["info", name, "--format", "json"], operation="get instance info"
        )
        if not result.succeeded:
            # info reports per-entity failures on stdout as JSON when it can
            if result.cause != FailureCause.NOT_FOUND and result.stdout.strip().startswith("{"):
                try:
                    return decode_info(result.stdout, name).unwrap()
                except DecodeError:
                    pass
            result.raise_for_status("get instance info", name)
        return decode_info(result.stdout, name).unwrap()

    async def find_instance(self, name: str) -> Optional[VmRecord]:
        """Like get_instance, but None when the instance does not exist."""
        try:
            return await self.get_instance(name)
        except NotFoundError:
            return None

    async def list_instances(self) -> List[VmRecord]:
        """Return all instances."""
        result = await self.executor.run(["list", "--format", "json"], operation="list instances")
        result.raise_for_status("list instances")
        return decode_list(result.stdout)

    async def delete_instance(self, name: str) -> None:
        """Soft-delete an instance; it stays recoverable until purged."""
        result = await self.executor.run(["delete", name], operation="delete instance")
        result.raise_for_status("delete instance", name)

    async def purge(self) -> CommandResult:
        """Permanently remove every deleted instance. The caller checks the result."""
        return await self.executor.run(["purge"], operation="purge instance")

    async def start_instance(self, name: str) -> None:
        await self._verb("start", name)

    async def stop_instance(self, name: str) -> None:
        await self._verb("stop", name)

    async def restart_instance(self, name: str) -> None:
        await self._verb("restart", name)

    async def suspend_instance(self, name: str) -> None:
        await self._verb("suspend", name)

    async def _verb(self, verb: str, name: str) -> None:
        operation = f"{verb} instance"
        result = await self.executor.run([verb, name], operation=operation)
        result.raise_for_status(operation, name)
