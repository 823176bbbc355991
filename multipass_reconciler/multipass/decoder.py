"""
Decoding of multipass `--format json` output.

`list` yields every instance; `info` yields a map keyed by instance name
plus an optional top-level `errors` array. Absence, per-entity errors and
malformed output are kept apart as an explicit tagged outcome.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from multipass_reconciler.errors import DecodeError, NotFoundError, PartialFailureError
from multipass_reconciler.models import VmRecord

RawOutput = Union[str, bytes]


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    PARTIAL_FAILURE = "partial_failure"


@dataclass
class InfoOutcome:
    """Result of decoding `multipass info NAME --format json`."""

    kind: OutcomeKind
    name: str
    record: Optional[VmRecord] = None
    errors: List[str] = field(default_factory=list)

    def unwrap(self) -> VmRecord:
        """Return the record, or raise the error matching the outcome."""
        if self.kind == OutcomeKind.SUCCESS and self.record is not None:
            return self.record
        if self.kind == OutcomeKind.PARTIAL_FAILURE:
            raise PartialFailureError(self.errors, [self.record] if self.record else [])
        raise NotFoundError(self.name)


def _load_object(raw: RawOutput) -> Dict[str, Any]:
    text = raw.decode(errors="replace") if isinstance(raw, bytes) else raw
    if not text or not text.strip():
        raise DecodeError("empty output", raw=text or "")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid JSON: {e}", raw=text) from e
    if not isinstance(payload, dict):
        raise DecodeError(f"expected a JSON object, got {type(payload).__name__}", raw=text)
    return payload


def _errors(payload: Dict[str, Any]) -> List[str]:
    errors = payload.get("errors") or []
    if isinstance(errors, (str, dict)):
        errors = [errors]
    if not isinstance(errors, list):
        raise DecodeError(f"'errors' must be a list, got {type(errors).__name__}")
    return [e if isinstance(e, str) else json.dumps(e, sort_keys=True) for e in errors]


def _record(entry: Any, name: Optional[str] = None) -> VmRecord:
    if not isinstance(entry, dict):
        raise DecodeError(f"instance entry must be an object, got {type(entry).__name__}")
    data = dict(entry)
    if name is not None:
        data.setdefault("name", name)
    try:
        return VmRecord.model_validate(data)
    except PydanticValidationError as e:
        raise DecodeError(f"malformed instance entry {data.get('name', '?')}: {e}") from e


def decode_list(raw: RawOutput) -> List[VmRecord]:
    """
    Decode `multipass list --format json`.

    Returns:
        Instances in the order multipass reported them, possibly empty

    Raises:
        DecodeError: output is not a list document
        PartialFailureError: the document carries per-entity errors
    """
    payload = _load_object(raw)
    if "list" not in payload:
        raise DecodeError("missing 'list' key")
    entries = payload["list"] or []
    if not isinstance(entries, list):
        raise DecodeError(f"'list' must be an array, got {type(entries).__name__}")

    records = [_record(entry) for entry in entries]
    errors = _errors(payload)
    if errors:
        raise PartialFailureError(errors, records)
    return records


def decode_info(raw: RawOutput, name: str) -> InfoOutcome:
    """
    Decode `multipass info NAME --format json` for one requested name.

    Raises:
        DecodeError: output is not an info document
    """
    payload = _load_object(raw)
    info = payload.get("info") or {}
    if not isinstance(info, dict):
        raise DecodeError(f"'info' must be an object, got {type(info).__name__}")

    errors = _errors(payload)
    record = _record(info[name], name) if name in info else None

    if errors:
        return InfoOutcome(OutcomeKind.PARTIAL_FAILURE, name, record=record, errors=errors)
    if record is None:
        return InfoOutcome(OutcomeKind.NOT_FOUND, name)
    return InfoOutcome(OutcomeKind.SUCCESS, name, record=record)
