"""
Error taxonomy for the reconciler.

Every failure raised by this package is a ReconcilerError carrying an
ErrorCategory, so a caller can tell whether to fix its configuration,
resolve a conflict with existing state, or look at the external tool.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class ErrorCategory(str, Enum):
    """Where the fault lies."""
    CONFIGURATION = "configuration"  # fix the declared spec
    STATE = "state"  # conflicts with what exists
    EXTERNAL = "external"  # multipass or the host system
    INTEGRATION = "integration"  # unexpected tool output


class FailureCause(str, Enum):
    """Classification of a failed tool invocation, derived once from its output."""
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    SPAWN_FAILED = "spawn_failed"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class ReconcilerError(Exception):
    """Base class for all reconciler errors."""

    category: ErrorCategory = ErrorCategory.EXTERNAL

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "category": self.category.value,
            "message": self.message,
        }


class ValidationError(ReconcilerError):
    """A spec field failed validation. Never touches the external tool."""

    category = ErrorCategory.CONFIGURATION

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"invalid {field}: {reason}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"field": self.field, "reason": self.reason})
        return data


class ReplacementRequiredError(ReconcilerError):
    """An immutable field changed; the instance must be destroyed and recreated."""

    category = ErrorCategory.CONFIGURATION

    def __init__(self, name: str, fields: Sequence[str]):
        self.name = name
        self.fields = list(fields)
        super().__init__(
            f"instance {name} requires replacement, immutable fields changed: {', '.join(self.fields)}"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"name": self.name, "fields": self.fields})
        return data


class NotFoundError(ReconcilerError):
    """The named instance is absent from the multipass registry."""

    category = ErrorCategory.STATE

    def __init__(self, name: Optional[str], output: str = ""):
        self.name = name
        self.output = output
        self.cause = FailureCause.NOT_FOUND
        message = f"instance {name} not found" if name else "instance not found"
        if output:
            message = f"{message}, output: {output}"
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"name": self.name, "output": self.output})
        return data


class ExternalToolError(ReconcilerError):
    """multipass exited non-zero, timed out, or could not be started."""

    category = ErrorCategory.EXTERNAL

    def __init__(
        self,
        operation: str,
        *,
        args: Sequence[str] = (),
        exit_code: Optional[int] = None,
        output: str = "",
        cause: FailureCause = FailureCause.UNKNOWN,
    ):
        self.operation = operation
        self.args_list = list(args)
        self.exit_code = exit_code
        self.output = output
        self.cause = cause
        status = f"exit status {exit_code}" if exit_code is not None else cause.value
        super().__init__(f"failed to {operation}: {status}, output: {output}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "operation": self.operation,
            "args": self.args_list,
            "exit_code": self.exit_code,
            "output": self.output,
            "cause": self.cause.value,
        })
        return data


class ConflictError(ExternalToolError):
    """The tool rejected the verb because of existing state (duplicate name, wrong power state)."""

    category = ErrorCategory.STATE


class PurgeError(ExternalToolError):
    """`purge` failed after `delete` succeeded; the instance sits in the recoverable trash."""

    def __init__(self, name: str, **kwargs: Any):
        self.name = name
        self.delete_succeeded = True
        super().__init__("purge instance", **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"name": self.name, "delete_succeeded": self.delete_succeeded})
        return data


class DecodeError(ReconcilerError):
    """multipass printed something that is not the expected JSON document."""

    category = ErrorCategory.INTEGRATION

    def __init__(self, detail: str, raw: str = ""):
        self.detail = detail
        self.raw = raw
        super().__init__(f"failed to parse multipass output: {detail}")


class PartialFailureError(ReconcilerError):
    """A structurally successful payload that also reports per-entity errors."""

    category = ErrorCategory.EXTERNAL

    def __init__(self, errors: Sequence[str], records: Optional[List[Any]] = None):
        self.errors = list(errors)
        self.records = list(records or [])
        super().__init__(f"multipass errors: {', '.join(self.errors)}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data
