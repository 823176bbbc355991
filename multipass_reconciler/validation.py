"""
Spec validation.

Each validator checks one VmSpec field and raises ValidationError naming
that field. Validation is pure: it never touches the filesystem beyond the
path string itself and never starts a process.
"""
import re
from typing import Callable, List, Tuple

from multipass_reconciler.config import DEFAULT_LIMITS, ValidationLimits
from multipass_reconciler.errors import ValidationError
from multipass_reconciler.models import VmSpec
from multipass_reconciler.utils.sizeparse import format_size, parse_size
from multipass_reconciler.utils.timeparse import parse_duration

_NAME_CHARS = re.compile(r"[A-Za-z0-9_-]+")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_YAML_EXTENSIONS = (".yaml", ".yml")


def validate_name(name: str, limits: ValidationLimits = DEFAULT_LIMITS) -> None:
    if not name:
        raise ValidationError("name", "name cannot be empty")
    if len(name) > limits.max_name_length:
        raise ValidationError("name", f"name too long ({len(name)} > {limits.max_name_length} characters)")
    if any(ch.isspace() for ch in name):
        raise ValidationError("name", "spaces not allowed in name")
    if not _NAME_CHARS.fullmatch(name):
        raise ValidationError("name", "invalid characters in name, use letters, digits, '-' and '_'")
    if name[0].isdigit():
        raise ValidationError("name", "name cannot start with number")
    if name.startswith("-"):
        raise ValidationError("name", "name cannot start with dash")
    if name.endswith("-"):
        raise ValidationError("name", "name cannot end with dash")
    if "--" in name:
        raise ValidationError("name", "consecutive dashes not allowed")


def validate_cpu(cpu: str, limits: ValidationLimits = DEFAULT_LIMITS) -> None:
    if not cpu or not cpu.strip():
        raise ValidationError("cpu", "CPU value cannot be empty")

    text = cpu.strip()
    try:
        number = float(text)
    except ValueError:
        raise ValidationError("cpu", f"CPU value '{text}' must be a number")

    if not re.fullmatch(r"[-+]?\d+", text):
        raise ValidationError("cpu", f"CPU value '{text}' must be an integer")
    if number <= 0:
        raise ValidationError("cpu", "CPU count must be greater than 0")
    if number > limits.max_cpus:
        raise ValidationError("cpu", f"CPU count {int(number)} exceeds maximum of {limits.max_cpus}")


def _validate_size(field: str, value: str, minimum: int, maximum: int) -> None:
    if not value or not value.strip():
        raise ValidationError(field, f"{field} value cannot be empty")
    try:
        size = parse_size(value)
    except ValueError as e:
        raise ValidationError(field, f"{field} {e}")

    if size == 0:
        raise ValidationError(field, f"{field} must be greater than 0")
    if size < minimum:
        raise ValidationError(field, f"{value} is below the minimum {field} of {format_size(minimum)}")
    if size > maximum:
        raise ValidationError(field, f"{value} exceeds maximum {field} of {format_size(maximum)}")


def validate_memory(memory: str, limits: ValidationLimits = DEFAULT_LIMITS) -> None:
    _validate_size("memory", memory, limits.min_memory_bytes, limits.max_memory_bytes)


def validate_disk(disk: str, limits: ValidationLimits = DEFAULT_LIMITS) -> None:
    _validate_size("disk", disk, limits.min_disk_bytes, limits.max_disk_bytes)


def validate_cloud_init(path: str, limits: ValidationLimits = DEFAULT_LIMITS) -> None:
    # optional
    if not path:
        return
    if _CONTROL_CHARS.search(path):
        raise ValidationError("cloud_init", "invalid characters in path")
    if len(path) > limits.max_cloud_init_path:
        raise ValidationError("cloud_init", f"path too long ({len(path)} > {limits.max_cloud_init_path} characters)")

    filename = path.replace("\\", "/").rsplit("/", 1)[-1]
    if filename.lower().endswith(_YAML_EXTENSIONS):
        return
    stem, dot, _ext = filename.rpartition(".")
    if not dot or not stem:
        raise ValidationError("cloud_init", "file must have .yaml or .yml extension")
    raise ValidationError("cloud_init", f"{filename} must be a YAML file (.yaml or .yml)")


def validate_timeout(timeout: str, limits: ValidationLimits = DEFAULT_LIMITS) -> None:
    # optional, multipass applies its own default
    if not timeout:
        return
    try:
        duration = parse_duration(timeout)
    except ValueError as e:
        raise ValidationError("timeout", str(e))

    if duration.total_seconds() < 0:
        raise ValidationError("timeout", "timeout must be positive")
    if duration.total_seconds() == 0:
        raise ValidationError("timeout", "timeout must be greater than 0")
    if duration > limits.max_timeout:
        raise ValidationError("timeout", f"timeout {timeout} exceeds maximum of {limits.max_timeout}")


_FIELD_VALIDATORS: Tuple[Tuple[str, Callable[[str, ValidationLimits], None]], ...] = (
    ("name", validate_name),
    ("cpu", validate_cpu),
    ("memory", validate_memory),
    ("disk", validate_disk),
    ("cloud_init", validate_cloud_init),
    ("timeout", validate_timeout),
)


def validate_spec(spec: VmSpec, limits: ValidationLimits = DEFAULT_LIMITS) -> None:
    """Raise the first ValidationError found, checking fields in declaration order."""
    for field, validator in _FIELD_VALIDATORS:
        validator(getattr(spec, field), limits)


def lint_spec(spec: VmSpec, limits: ValidationLimits = DEFAULT_LIMITS) -> List[ValidationError]:
    """Collect a ValidationError for every failing field."""
    errors: List[ValidationError] = []
    for field, validator in _FIELD_VALIDATORS:
        try:
            validator(getattr(spec, field), limits)
        except ValidationError as e:
            errors.append(e)
    return errors
