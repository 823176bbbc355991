"""
Subprocess execution of the multipass binary.

Runs one process per call, captures its output and exit status, and turns
failures into classified errors. The classification is done here, once,
from the tool's own diagnostic text; callers branch on exception type.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from multipass_reconciler.config import ExecutorConfig
from multipass_reconciler.errors import (
    ConflictError,
    ExternalToolError,
    FailureCause,
    NotFoundError,
)

logger = logging.getLogger(__name__)

# Substrings of multipass diagnostics, matched case-insensitively.
_ALREADY_EXISTS_MARKERS = (
    "already exists",
    "already in use",
)
# Only meaningful for verbs that target one existing instance.
_INSTANCE_VERBS = frozenset({"info", "delete", "start", "stop", "restart", "suspend"})
_NOT_FOUND_MARKERS = (
    "does not exist",
    "no such instance",
    "instance not found",
)
_NOT_FOUND_RE = re.compile(r'instance\s+"?[\w-]+"?\s+(?:was\s+)?not found')
_INVALID_STATE_MARKERS = (
    "is not running",
    "is already running",
    "is already stopped",
    "is already suspended",
    "is deleted",
    "is suspended",
    "is stopped",
    "is currently",
    "cannot be suspended",
    "cannot be stopped",
    "cannot be started",
)
_TIMEOUT_MARKERS = (
    "timed out",
    "timeout",
)


def classify_failure(output: str, verb: Optional[str] = None) -> FailureCause:
    """
    Derive the cause of a failed invocation from its combined output.

    NOT_FOUND is only reported for verbs that act on a named instance; a
    launch or list failure mentioning a missing file or image is not about
    the instance itself.
    """
    combined = (output or "").lower()
    if any(marker in combined for marker in _ALREADY_EXISTS_MARKERS):
        return FailureCause.ALREADY_EXISTS
    if any(marker in combined for marker in _INVALID_STATE_MARKERS):
        return FailureCause.INVALID_STATE
    if verb in _INSTANCE_VERBS and (
        any(marker in combined for marker in _NOT_FOUND_MARKERS) or _NOT_FOUND_RE.search(combined)
    ):
        return FailureCause.NOT_FOUND
    if any(marker in combined for marker in _TIMEOUT_MARKERS):
        return FailureCause.TIMEOUT
    return FailureCause.UNKNOWN


@dataclass
class CommandResult:
    """Result of one multipass invocation."""

    args: List[str]
    exit_code: int
    stdout: str
    stderr: str
    execution_time: float = 0.0

    @property
    def verb(self) -> Optional[str]:
        return self.args[0] if self.args else None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        if self.stderr:
            return f"{self.stdout}\n{self.stderr}".strip()
        return self.stdout.strip()

    @property
    def cause(self) -> Optional[FailureCause]:
        if self.succeeded:
            return None
        return classify_failure(self.output, self.verb)

    def raise_for_status(self, operation: str, name: Optional[str] = None) -> "CommandResult":
        """
        Raise the classified error for a failed invocation.

        Args:
            operation: What was attempted, e.g. "launch instance"
            name: Instance the command targeted, used for NotFoundError

        Returns:
            self, when the command succeeded

        Raises:
            ConflictError: duplicate name or state-incompatible verb
            NotFoundError: the instance does not exist
            ExternalToolError: any other non-zero exit
        """
        if self.succeeded:
            return self

        cause = classify_failure(self.output, self.verb)
        if cause == FailureCause.NOT_FOUND:
            raise NotFoundError(name, output=self.output)

        error_cls = ConflictError if cause in (FailureCause.ALREADY_EXISTS, FailureCause.INVALID_STATE) else ExternalToolError
        raise error_cls(
            operation,
            args=self.args,
            exit_code=self.exit_code,
            output=self.output,
            cause=cause,
        )


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Kill a still-running child and reap it."""
    try:
        proc.kill()
    except ProcessLookupError:
        # already exited
        pass
    await proc.wait()


@dataclass(frozen=True)
class CommandExecutor:
    """
    Runs multipass as a subprocess.

    Holds nothing but its frozen configuration, so one executor can be
    shared by any number of concurrent operations.
    """

    config: ExecutorConfig = field(default_factory=ExecutorConfig)

    @property
    def binary_path(self) -> str:
        return self.config.binary_path

    async def run(
        self,
        args: Sequence[str],
        *,
        timeout: Optional[float] = None,
        operation: str = "run multipass",
    ) -> CommandResult:
        """
        Execute multipass with the given arguments.

        Args:
            args: Arguments after the binary, e.g. ["info", "vm1", "--format", "json"]
            timeout: Seconds the tool itself was told to wait; the process is
                killed once timeout plus the configured grace period elapses
            operation: Description used in error messages

        Returns:
            Command result, whatever the exit status

        Raises:
            ExternalToolError: the process could not be started or overran its timeout
        """
        argv = [self.binary_path, *args]
        logger.debug(f"Executing multipass command: {' '.join(argv)}")
        start_time = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning(f"Unable to start {self.binary_path}: {e}")
            raise ExternalToolError(
                operation,
                args=list(args),
                output=str(e),
                cause=FailureCause.SPAWN_FAILED,
            ) from e

        guard = None if timeout is None else timeout + self.config.timeout_grace_seconds
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=guard)
        except asyncio.TimeoutError as e:
            await _terminate(proc)
            raise ExternalToolError(
                operation,
                args=list(args),
                output=f"multipass did not finish within {guard:g}s and was killed",
                cause=FailureCause.TIMEOUT,
            ) from e
        except asyncio.CancelledError:
            await _terminate(proc)
            raise

        result = CommandResult(
            args=list(args),
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            execution_time=time.monotonic() - start_time,
        )
        if not result.succeeded:
            logger.debug(f"multipass {args[0] if args else ''} exited with {result.exit_code}: {result.output}")
        return result
