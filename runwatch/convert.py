"""Conversion of run objects to Results API payloads and summary statuses."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from runwatch.objects import (
    SUCCEEDED,
    Condition,
    GroupVersionKind,
    PipelineRun,
    RunObject,
    TaskRun,
)

LOG_RECORD_TYPE = "results.tekton.dev/v1alpha2.Log"

_RECORD_NAME = re.compile(
    r"^([a-z0-9_-]{1,63})/results/([a-z0-9_-]{1,63})/records/([a-z0-9_-]{1,63})$"
)

_SCHEME: tuple[tuple[type, GroupVersionKind], ...] = (
    (TaskRun, GroupVersionKind("tekton.dev", "v1beta1", "TaskRun")),
    (PipelineRun, GroupVersionKind("tekton.dev", "v1beta1", "PipelineRun")),
)


class RecordStatus(IntEnum):
    """General outcome of a run as kept in a record summary."""

    UNKNOWN = 0
    SUCCESS = 1
    FAILURE = 2
    TIMEOUT = 3
    CANCELLED = 4


_REASONS: dict[str, RecordStatus] = {
    # TaskRun reasons.
    "Succeeded": RecordStatus.SUCCESS,
    "Failed": RecordStatus.FAILURE,
    "TaskRunTimeout": RecordStatus.TIMEOUT,
    "TaskRunCancelled": RecordStatus.CANCELLED,
    "Running": RecordStatus.UNKNOWN,
    "Started": RecordStatus.UNKNOWN,
    # PipelineRun reasons.
    "Completed": RecordStatus.SUCCESS,
    "PipelineRunTimeout": RecordStatus.TIMEOUT,
    "Cancelled": RecordStatus.CANCELLED,
    "PipelineRunPending": RecordStatus.UNKNOWN,
    "PipelineRunStopping": RecordStatus.UNKNOWN,
    "CancelledRunningFinally": RecordStatus.UNKNOWN,
    "StoppedRunningFinally": RecordStatus.UNKNOWN,
    # Pod reasons.
    "CouldntGetTask": RecordStatus.FAILURE,
    "TaskRunResolutionFailed": RecordStatus.FAILURE,
    "TaskRunValidationFailed": RecordStatus.FAILURE,
    "ExceededResourceQuota": RecordStatus.FAILURE,
    "ExceededNodeResources": RecordStatus.FAILURE,
    "CreateContainerConfigError": RecordStatus.FAILURE,
    "PodCreationFailed": RecordStatus.FAILURE,
    "Pending": RecordStatus.UNKNOWN,
}


@dataclass(frozen=True)
class Payload:
    """Typed, JSON-encoded data carried by a record."""

    type: str
    value: bytes


def _dumps(data: Any) -> bytes:
    return json.dumps(data, separators=(",", ":")).encode("utf-8")


def to_proto(obj: RunObject | None) -> Payload | None:
    """Encode a run object as a record payload; None stays None."""
    if obj is None:
        return None
    return Payload(type=type_name(obj), value=_dumps(obj.to_dict()))


def to_log_proto(obj: RunObject | None, kind: str, name: str) -> Payload | None:
    """Build the Log payload for a run, given the full log record name."""
    if obj is None:
        return None
    match = _RECORD_NAME.match(name)
    if match is None:
        raise ValueError(f"invalid record name {name!r}")
    uid = match.group(3)
    log = {
        "kind": "Log",
        "apiVersion": "results.tekton.dev/v1alpha2",
        "metadata": {
            "name": f"{obj.name}-log",
            "namespace": obj.namespace,
            "uid": uid,
        },
        "spec": {
            "resource": {
                "kind": kind,
                "namespace": obj.namespace,
                "name": obj.name,
                "uid": obj.uid,
            },
        },
    }
    return Payload(type=LOG_RECORD_TYPE, value=_dumps(log))


def infer_gvk(obj: RunObject) -> GroupVersionKind:
    """Infer the GroupVersionKind of a known run type."""
    for cls, gvk in _SCHEME:
        if isinstance(obj, cls):
            return gvk
    raise ValueError("could not determine GroupVersionKind for object")


def type_name(obj: RunObject) -> str:
    """Return '<apiVersion>.<kind>', or '' if the type cannot be told."""
    gvk = obj.gvk
    if gvk.empty():
        try:
            gvk = infer_gvk(obj)
        except ValueError:
            return ""
        if gvk.empty():
            return ""
    return f"{gvk.api_version()}.{gvk.kind}"


def status(condition: Condition | None) -> RecordStatus:
    """Map the Succeeded condition of a run to a record status."""
    if condition is None or condition.type != SUCCEEDED:
        return RecordStatus.UNKNOWN
    return _REASONS.get(condition.reason, RecordStatus.UNKNOWN)