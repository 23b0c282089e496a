"""Kubernetes-style run objects (TaskRuns and PipelineRuns) and their parts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

SUCCEEDED = "Succeeded"
READY = "Ready"

STATUS_TRUE = "True"
STATUS_FALSE = "False"
STATUS_UNKNOWN = "Unknown"


def _split_api_version(api_version: str) -> tuple[str, str]:
    """Split an apiVersion string into (group, version)."""
    if not api_version:
        return "", ""
    parts = api_version.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    return "", ""


def _format_time(moment: datetime | None) -> str | None:
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop empty values, the way omitempty JSON fields are left out."""
    return {key: value for key, value in data.items() if value not in (None, "", 0, False, [], {})}


@dataclass(frozen=True)
class GroupVersionKind:
    """API group, version and kind that identify an object type."""

    group: str = ""
    version: str = ""
    kind: str = ""

    def empty(self) -> bool:
        return not (self.group or self.version or self.kind)

    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


@dataclass
class Condition:
    """A status condition of a run."""

    type: str
    status: str = ""
    reason: str = ""
    message: str = ""
    severity: str = ""
    last_transition_time: datetime | None = None

    def is_unknown(self) -> bool:
        return self.status == STATUS_UNKNOWN

    def is_false(self) -> bool:
        return self.status == STATUS_FALSE

    def _to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "type": self.type,
                "status": self.status,
                "severity": self.severity,
                "lastTransitionTime": _format_time(self.last_transition_time),
                "reason": self.reason,
                "message": self.message,
            }
        )


@dataclass
class OwnerReference:
    """Reference from an object to the object that owns it."""

    api_version: str = ""
    kind: str = ""
    name: str = ""
    uid: str = ""
    controller: bool | None = None

    def _to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
        }
        if self.controller is not None:
            data["controller"] = self.controller
        return data


@dataclass
class ChildReference:
    """Reference from a PipelineRun status to one of its child runs."""

    name: str
    kind: str = "TaskRun"
    api_version: str = "tekton.dev/v1beta1"
    pipeline_task_name: str = ""

    def _to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "apiVersion": self.api_version,
                "kind": self.kind,
                "name": self.name,
                "pipelineTaskName": self.pipeline_task_name,
            }
        )


@dataclass(kw_only=True)
class RunObject:
    """A run object with metadata, spec and status."""

    api_version: str = ""
    kind: str = ""
    name: str = ""
    generate_name: str = ""
    namespace: str = ""
    uid: str = ""
    generation: int = 0
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    owner_references: list[OwnerReference] = field(default_factory=list)
    spec: dict[str, Any] = field(default_factory=dict)
    conditions: list[Condition] = field(default_factory=list)
    start_time: datetime | None = None
    completion_time: datetime | None = None
    status_fields: dict[str, Any] = field(default_factory=dict)

    @property
    def gvk(self) -> GroupVersionKind:
        group, version = _split_api_version(self.api_version)
        return GroupVersionKind(group, version, self.kind)

    @gvk.setter
    def gvk(self, value: GroupVersionKind) -> None:
        self.api_version = value.api_version()
        self.kind = value.kind

    def get_condition(self, condition_type: str) -> Condition | None:
        return next((c for c in self.conditions if c.type == condition_type), None)

    def is_done(self) -> bool:
        """True once the Succeeded condition is set and no longer unknown."""
        condition = self.get_condition(SUCCEEDED)
        return condition is not None and not condition.is_unknown()

    def _extra_status(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        metadata = _compact(
            {
                "name": self.name,
                "generateName": self.generate_name,
                "namespace": self.namespace,
                "uid": self.uid,
                "generation": self.generation,
                "labels": dict(self.labels),
                "annotations": dict(self.annotations),
                "ownerReferences": [ref._to_dict() for ref in self.owner_references],
            }
        )
        status = _compact(
            {
                "conditions": [c._to_dict() for c in self.conditions],
                "startTime": _format_time(self.start_time),
                "completionTime": _format_time(self.completion_time),
                **self.status_fields,
                **self._extra_status(),
            }
        )
        data = _compact({"apiVersion": self.api_version, "kind": self.kind})
        data.update(metadata=metadata, spec=dict(self.spec), status=status)
        return data


@dataclass(kw_only=True)
class TaskRun(RunObject):
    """A single run of a task."""


@dataclass(kw_only=True)
class PipelineRun(RunObject):
    """A run of a pipeline, made of child TaskRuns."""

    child_references: list[ChildReference] = field(default_factory=list)
    task_runs: dict[str, dict[str, Any]] = field(default_factory=dict)

    def _extra_status(self) -> dict[str, Any]:
        return _compact(
            {
                "childReferences": [ref._to_dict() for ref in self.child_references],
                "taskRuns": {name: dict(value) for name, value in self.task_runs.items()},
            }
        )