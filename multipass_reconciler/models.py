"""
Desired and observed state models.

VmSpec is what the caller declares, VmRecord is what multipass reports.
LaunchOptions is the tool-facing form of a VmSpec with the timeout already
parsed, built once at the edge.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from multipass_reconciler.utils.timeparse import parse_duration


class VmState(str, Enum):
    """Observed lifecycle state of an instance."""
    ABSENT = "Absent"
    STARTING = "Starting"
    RUNNING = "Running"
    STOPPED = "Stopped"
    SUSPENDED = "Suspended"
    DELETED = "Deleted"
    UNKNOWN = "Unknown"

    @classmethod
    def from_multipass(cls, value: Any) -> "VmState":
        """Map a multipass state string onto the lifecycle enum."""
        if isinstance(value, VmState):
            return value
        return _MULTIPASS_STATES.get(str(value or "").strip().lower(), cls.UNKNOWN)


_MULTIPASS_STATES = {
    "running": VmState.RUNNING,
    "delayed shutdown": VmState.RUNNING,
    "starting": VmState.STARTING,
    "restarting": VmState.STARTING,
    "stopped": VmState.STOPPED,
    "suspended": VmState.SUSPENDED,
    "suspending": VmState.SUSPENDED,
    "deleted": VmState.DELETED,
    "absent": VmState.ABSENT,
}

PRESENT_STATES = frozenset({VmState.STARTING, VmState.RUNNING, VmState.STOPPED, VmState.SUSPENDED})

# Fields that cannot change after launch; any difference forces replacement.
IMMUTABLE_FIELDS = ("name", "image", "cpu", "memory", "disk", "cloud_init", "timeout")


class VmSpec(BaseModel):
    """Caller-declared desired configuration for one instance."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    name: str = Field(description="Instance name, the only identity across operations")
    image: str = Field(default="", description="Image to launch (e.g. 'ubuntu', '22.04')")
    cpu: str = Field(default="1", description="Number of CPUs to allocate")
    memory: str = Field(default="1G", description="Memory to allocate (e.g. '1G', '512M')")
    disk: str = Field(default="5G", description="Disk space to allocate (e.g. '5G', '10G')")
    cloud_init: str = Field(default="", alias="cloudInit", description="Path to a cloud-init YAML file")
    timeout: str = Field(default="", description="Maximum time to wait for launch (e.g. '5m')")

    @field_validator("image", "cpu", "memory", "disk", "cloud_init", "timeout", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class VmRecord(BaseModel):
    """Observed state of an instance as reported by multipass."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    state: VmState = VmState.UNKNOWN
    ipv4: List[str] = Field(default_factory=list)
    release: str = ""
    image_hash: str = ""

    # Opaque metadata, carried through without interpretation.
    load: List[float] = Field(default_factory=list)
    disk_usage: Optional[Any] = None
    memory: Dict[str, Any] = Field(default_factory=dict)
    mounts: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("state", mode="before")
    @classmethod
    def _map_state(cls, value: Any) -> VmState:
        return VmState.from_multipass(value)

    @field_validator("ipv4", "load", mode="before")
    @classmethod
    def _none_as_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("memory", "mounts", mode="before")
    @classmethod
    def _none_as_dict(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("release", "image_hash", mode="before")
    @classmethod
    def _none_as_str(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def present(self) -> bool:
        return self.state in PRESENT_STATES

    def summary(self) -> Dict[str, Any]:
        """The fields a caller persists as last-known state."""
        return {
            "name": self.name,
            "state": self.state.value,
            "ipv4": list(self.ipv4),
            "release": self.release,
            "image_hash": self.image_hash,
        }


def _normalize_count(value: str) -> str:
    text = value.strip()
    try:
        return str(int(text))
    except ValueError:
        return text


def _normalize_size(value: str) -> str:
    return value.strip().lstrip("+")


@dataclass(frozen=True)
class LaunchOptions:
    """Parameters of a `multipass launch` call, parsed from a validated VmSpec."""

    name: str
    image: str = ""
    cpu: str = ""
    memory: str = ""
    disk: str = ""
    cloud_init: str = ""
    timeout: Optional[timedelta] = None

    @classmethod
    def from_spec(cls, spec: VmSpec) -> "LaunchOptions":
        return cls(
            name=spec.name,
            image=spec.image,
            cpu=_normalize_count(spec.cpu),
            memory=_normalize_size(spec.memory),
            disk=_normalize_size(spec.disk),
            cloud_init=spec.cloud_init,
            timeout=parse_duration(spec.timeout) if spec.timeout else None,
        )
