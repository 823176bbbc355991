"""
Tests for the multipass command executor.

The executor is exercised against small shell scripts standing in for the
multipass binary, so real process spawning, exit codes and timeouts are
covered without multipass being installed.
"""

import asyncio
import os

import pytest

from multipass_reconciler.config import ExecutorConfig
from multipass_reconciler.errors import (
    ConflictError,
    ErrorCategory,
    ExternalToolError,
    FailureCause,
    NotFoundError,
)
from multipass_reconciler.multipass.executor import (
    CommandExecutor,
    CommandResult,
    classify_failure,
)


class TestClassifyFailure:
    """Test classification of multipass diagnostics."""

    @pytest.mark.parametrize("verb,output,cause", [
        ("launch", 'launch failed: instance "web" already exists', FailureCause.ALREADY_EXISTS),
        ("info", 'info failed: instance "web" does not exist', FailureCause.NOT_FOUND),
        ("delete", 'delete failed: instance "web" not found', FailureCause.NOT_FOUND),
        ("stop", "The instance web is not running", FailureCause.INVALID_STATE),
        ("suspend", 'suspend failed: instance "web" is stopped', FailureCause.INVALID_STATE),
        ("launch", "launch failed: Timed out waiting for response", FailureCause.TIMEOUT),
        ("launch", "launch failed: Downloading image: network unreachable", FailureCause.UNKNOWN),
        ("launch", "", FailureCause.UNKNOWN),
    ])
    def test_classification(self, verb, output, cause):
        assert classify_failure(output, verb) == cause

    @pytest.mark.parametrize("verb,output", [
        ("launch", "launch failed: cloud-init file /tmp/u.yaml not found"),
        ("launch", "launch failed: image 'jammy-custom' does not exist"),
        ("list", "list failed: socket /run/multipass_socket not found"),
        ("purge", "purge failed: no such instance directory"),
        ("info", "info failed: mount source /srv/data not found"),
        (None, 'instance "web" does not exist'),
    ])
    def test_missing_resources_other_than_the_instance(self, verb, output):
        assert classify_failure(output, verb) == FailureCause.UNKNOWN


class TestCommandResult:
    """Test command result data structure."""

    def test_successful_result(self):
        result = CommandResult(args=["list"], exit_code=0, stdout='{"list": []}\n', stderr="")
        assert result.succeeded is True
        assert result.cause is None
        assert result.output == '{"list": []}'
        assert result.raise_for_status("list instances") is result

    def test_output_combines_streams(self):
        result = CommandResult(args=["launch"], exit_code=1, stdout="Retrieving image", stderr="launch failed")
        assert result.output == "Retrieving image\nlaunch failed"

    def test_not_found_raises_not_found(self):
        result = CommandResult(
            args=["info", "web"], exit_code=2, stdout="",
            stderr='info failed: instance "web" does not exist',
        )
        with pytest.raises(NotFoundError) as exc_info:
            result.raise_for_status("get instance info", "web")
        assert exc_info.value.name == "web"
        assert "does not exist" in exc_info.value.output

    def test_duplicate_raises_conflict(self):
        result = CommandResult(
            args=["launch", "--name", "web"], exit_code=1, stdout="",
            stderr='launch failed: instance "web" already exists',
        )
        with pytest.raises(ConflictError) as exc_info:
            result.raise_for_status("launch instance", "web")
        error = exc_info.value
        assert error.category == ErrorCategory.STATE
        assert error.cause == FailureCause.ALREADY_EXISTS
        assert error.exit_code == 1
        assert str(error) == (
            'failed to launch instance: exit status 1, output: launch failed: instance "web" already exists'
        )

    def test_launch_missing_file_is_not_instance_absence(self):
        result = CommandResult(
            args=["launch", "--name", "web", "--cloud-init", "/tmp/u.yaml"], exit_code=1, stdout="",
            stderr="launch failed: cloud-init file /tmp/u.yaml not found",
        )
        with pytest.raises(ExternalToolError) as exc_info:
            result.raise_for_status("launch instance", "web")
        assert not isinstance(exc_info.value, NotFoundError)
        assert exc_info.value.cause == FailureCause.UNKNOWN
        assert exc_info.value.category == ErrorCategory.EXTERNAL

    def test_other_failure_raises_external_error(self):
        result = CommandResult(args=["list"], exit_code=1, stdout="", stderr="cannot connect to the multipass socket")
        with pytest.raises(ExternalToolError) as exc_info:
            result.raise_for_status("list instances")
        assert not isinstance(exc_info.value, ConflictError)
        assert exc_info.value.category == ErrorCategory.EXTERNAL
        assert exc_info.value.args_list == ["list"]


class TestCommandExecutor:
    """Test subprocess execution against stand-in scripts."""

    def test_default_binary(self):
        assert CommandExecutor().binary_path == "multipass"
        assert CommandExecutor(ExecutorConfig(binary_path="")).binary_path == "multipass"

    @pytest.mark.asyncio
    async def test_success_captures_stdout(self, make_script):
        script = make_script("echo '{\"list\": []}'")
        executor = CommandExecutor(ExecutorConfig(binary_path=str(script)))

        result = await executor.run(["list", "--format", "json"])

        assert result.succeeded
        assert result.stdout.strip() == '{"list": []}'
        assert result.args == ["list", "--format", "json"]
        assert result.execution_time >= 0

    @pytest.mark.asyncio
    async def test_arguments_are_passed_verbatim(self, make_script):
        script = make_script('echo "$@"')
        executor = CommandExecutor(ExecutorConfig(binary_path=str(script)))

        result = await executor.run(["info", "web vm", "--format", "json"])

        assert result.stdout.strip() == "info web vm --format json"

    @pytest.mark.asyncio
    async def test_non_zero_exit_is_returned(self, make_script):
        script = make_script("echo 'launch failed: instance \"web\" already exists' >&2\nexit 2")
        executor = CommandExecutor(ExecutorConfig(binary_path=str(script)))

        result = await executor.run(["launch", "--name", "web"], operation="launch instance")

        assert result.exit_code == 2
        assert result.cause == FailureCause.ALREADY_EXISTS
        with pytest.raises(ConflictError, match="already exists"):
            result.raise_for_status("launch instance", "web")

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path):
        executor = CommandExecutor(ExecutorConfig(binary_path=str(tmp_path / "no-such-multipass")))

        with pytest.raises(ExternalToolError) as exc_info:
            await executor.run(["launch", "--name", "web"], operation="launch instance")

        assert exc_info.value.cause == FailureCause.SPAWN_FAILED
        assert "failed to launch instance" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_executable_binary(self, make_script):
        script = make_script("exit 0", executable=False)
        executor = CommandExecutor(ExecutorConfig(binary_path=str(script)))

        with pytest.raises(ExternalToolError) as exc_info:
            await executor.run(["list"], operation="list instances")

        assert exc_info.value.cause == FailureCause.SPAWN_FAILED

    @pytest.mark.asyncio
    async def test_overrunning_process_is_killed(self, make_script):
        script = make_script("exec sleep 10")
        executor = CommandExecutor(ExecutorConfig(binary_path=str(script), timeout_grace_seconds=0))

        with pytest.raises(ExternalToolError) as exc_info:
            await executor.run(["launch", "--name", "web"], timeout=0.2, operation="launch instance")

        assert exc_info.value.cause == FailureCause.TIMEOUT
        assert "failed to launch instance" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_grace_period_extends_guard(self, make_script):
        script = make_script("sleep 0.3\necho done")
        executor = CommandExecutor(ExecutorConfig(binary_path=str(script), timeout_grace_seconds=5))

        result = await executor.run(["launch"], timeout=0.1)

        assert result.succeeded
        assert result.stdout.strip() == "done"

    @pytest.mark.asyncio
    async def test_cancelled_call_kills_child(self, make_script, tmp_path):
        pid_file = tmp_path / "child.pid"
        script = make_script(f"echo $$ > '{pid_file}'\nexec sleep 10")
        executor = CommandExecutor(ExecutorConfig(binary_path=str(script)))

        task = asyncio.create_task(executor.run(["launch", "--name", "web"]))
        for _ in range(100):
            if pid_file.exists() and pid_file.read_text().strip():
                break
            await asyncio.sleep(0.05)
        pid = int(pid_file.read_text().strip())

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        # killed and reaped, so the pid no longer exists
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
