"""
multipass CLI integration: subprocess execution, JSON decoding and the
typed client built on both.
"""

from multipass_reconciler.multipass.client import MultipassClient
from multipass_reconciler.multipass.executor import CommandExecutor, CommandResult

__all__ = ["MultipassClient", "CommandExecutor", "CommandResult"]
