import asyncio
import json
import os
import stat
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from multipass_reconciler.multipass.client import MultipassClient
from multipass_reconciler.multipass.executor import CommandResult
from multipass_reconciler.reconciler import InstanceReconciler


class FakeMultipass:
    """
    In-memory stand-in for the multipass binary.

    Implements the executor interface and answers each verb the way
    multipass does, including its diagnostics. Every invocation is
    recorded in `calls`.
    """

    def __init__(self):
        self.instances: Dict[str, Dict] = {}
        self.calls: List[List[str]] = []
        self.timeouts: List[Optional[float]] = []
        self.failures: Dict[str, Tuple[int, str]] = {}

    def add_instance(self, name: str, state: str = "Running", ipv4: Optional[List[str]] = None):
        self.instances[name] = {
            "state": state,
            "ipv4": ipv4 if ipv4 is not None else ["10.0.0.2"],
            "release": "Ubuntu 22.04.3 LTS",
            "image_hash": "a1b2c3d4",
            "load": [0.1, 0.05, 0.0],
            "memory": {"total": 1024000000, "used": 120000000},
            "mounts": {},
        }

    def fail(self, verb: str, output: str, exit_code: int = 1):
        """Make every subsequent `verb` invocation fail with this output."""
        self.failures[verb] = (exit_code, output)

    def verbs(self) -> List[str]:
        return [call[0] for call in self.calls]

    async def run(
        self,
        args: Sequence[str],
        *,
        timeout: Optional[float] = None,
        operation: str = "run multipass",
    ) -> CommandResult:
        args = list(args)
        self.calls.append(args)
        self.timeouts.append(timeout)
        verb = args[0]

        if verb in self.failures:
            exit_code, output = self.failures[verb]
            await asyncio.sleep(0)
            return CommandResult(args=args, exit_code=exit_code, stdout="", stderr=output)

        # check-and-set happens before the first suspension point
        handler = getattr(self, f"_{verb}")
        exit_code, stdout, stderr = handler(args)
        await asyncio.sleep(0)
        return CommandResult(args=args, exit_code=exit_code, stdout=stdout, stderr=stderr)

    def _missing(self, verb: str, name: str):
        return 2, "", f'{verb} failed: instance "{name}" does not exist'

    def _launch(self, args):
        name = args[args.index("--name") + 1]
        if name in self.instances:
            return 1, "", f'launch failed: instance "{name}" already exists'
        self.add_instance(name)
        return 0, f"Launched: {name}", ""

    def _info(self, args):
        name = args[1]
        if name not in self.instances:
            return self._missing("info", name)
        return 0, json.dumps({"errors": [], "info": {name: self.instances[name]}}), ""

    def _list(self, args):
        entries = [
            {"name": name, "state": data["state"], "ipv4": data["ipv4"], "release": data["release"]}
            for name, data in self.instances.items()
        ]
        return 0, json.dumps({"list": entries}), ""

    def _delete(self, args):
        name = args[1]
        if name not in self.instances:
            return self._missing("delete", name)
        self.instances[name]["state"] = "Deleted"
        return 0, "", ""

    def _purge(self, args):
        for name in [n for n, data in self.instances.items() if data["state"] == "Deleted"]:
            del self.instances[name]
        return 0, "", ""

    def _set_state(self, verb, name, state, refuse_from=()):
        if name not in self.instances:
            return self._missing(verb, name)
        current = self.instances[name]["state"]
        if current in refuse_from:
            return 2, "", f'{verb} failed: instance "{name}" is {current.lower()}'
        self.instances[name]["state"] = state
        return 0, "", ""

    def _start(self, args):
        return self._set_state("start", args[1], "Running", refuse_from=("Deleted",))

    def _stop(self, args):
        return self._set_state("stop", args[1], "Stopped", refuse_from=("Deleted",))

    def _restart(self, args):
        return self._set_state("restart", args[1], "Running", refuse_from=("Deleted", "Stopped"))

    def _suspend(self, args):
        return self._set_state("suspend", args[1], "Suspended", refuse_from=("Deleted", "Stopped"))


@pytest.fixture
def fake_multipass():
    return FakeMultipass()


@pytest.fixture
def reconciler(fake_multipass):
    return InstanceReconciler(MultipassClient(fake_multipass))


@pytest.fixture
def make_script(tmp_path):
    """Write an executable shell script standing in for the multipass binary."""

    def _make(body: str, name: str = "multipass", executable: bool = True) -> Path:
        script = tmp_path / name
        script.write_text(f"#!/bin/sh\n{body}\n")
        mode = os.stat(script).st_mode
        if executable:
            script.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        else:
            script.chmod(mode & ~(stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))
        return script

    return _make
