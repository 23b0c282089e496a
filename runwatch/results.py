"""Storing run objects as Results and Records, with the naming rules for both."""

from __future__ import annotations

import copy
import itertools
import re
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

from runwatch import annotation
from runwatch.convert import Payload, RecordStatus, status, to_log_proto, to_proto, type_name
from runwatch.objects import READY, SUCCEEDED, Condition, RunObject

_PART = r"[a-z0-9_-]{1,63}"
_RESULT_NAME = re.compile(rf"^({_PART})/results/({_PART})$")
_RECORD_NAME = re.compile(rf"^({_PART})/results/({_PART})/records/({_PART})$")
_LOG_NAME = re.compile(rf"^({_PART})/results/({_PART})/logs/({_PART})$")

_TRIGGER_EVENT_LABEL = "triggers.tekton.dev/triggers-eventid"


class NotFoundError(LookupError):
    """Raised when a Result or Record does not exist."""


@dataclass
class RecordSummary:
    """Summary of the primary record of a Result."""

    record: str = ""
    type: str = ""
    status: RecordStatus = RecordStatus.UNKNOWN
    start_time: datetime | None = None
    end_time: datetime | None = None


@dataclass
class Result:
    """A group of records that belong together."""

    name: str
    uid: str = ""
    summary: RecordSummary | None = None
    create_time: datetime | None = None
    update_time: datetime | None = None
    etag: str = ""


@dataclass
class Record:
    """A stored object within a Result."""

    name: str
    data: Payload | None = None
    uid: str = ""
    create_time: datetime | None = None
    update_time: datetime | None = None
    etag: str = ""


def format_result_name(parent: str, name: str) -> str:
    return f"{parent}/results/{name}"


def format_record_name(parent: str, name: str) -> str:
    return f"{parent}/records/{name}"


def format_log_name(parent: str, name: str) -> str:
    return f"{parent}/logs/{name}"


def _parse_result_name(name: str) -> tuple[str, str]:
    match = _RESULT_NAME.match(name)
    if match is None:
        raise ValueError(f"invalid result name {name!r}")
    return match.group(1), match.group(2)


def parse_record_name(name: str) -> tuple[str, str, str]:
    """Split a record name into (parent, result, record)."""
    match = _RECORD_NAME.match(name)
    if match is None:
        raise ValueError(f"invalid record name {name!r}")
    return match.group(1), match.group(2), match.group(3)


def parse_log_name(name: str) -> tuple[str, str, str]:
    """Split a log name into (parent, result, log)."""
    match = _LOG_NAME.match(name)
    if match is None:
        raise ValueError(f"invalid log name {name!r}")
    return match.group(1), match.group(2), match.group(3)


class ResultsService:
    """In-memory store of Results and Records."""

    def __init__(self) -> None:
        self._results: dict[str, Result] = {}
        self._records: dict[str, Record] = {}
        self._revisions = itertools.count(1)

    def _etag(self, uid: str) -> str:
        return f"{uid}-{next(self._revisions)}"

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def get_result(self, name: str) -> Result:
        try:
            return copy.deepcopy(self._results[name])
        except KeyError:
            raise NotFoundError(f"result {name!r} not found") from None

    def create_result(self, parent: str, result: Result) -> Result:
        result_parent, _ = _parse_result_name(result.name)
        if result_parent != parent:
            raise ValueError(f"result {result.name!r} does not belong to {parent!r}")
        if result.name in self._results:
            raise ValueError(f"result {result.name!r} already exists")
        now = self._now()
        uid = str(uuid.uuid4())
        stored = Result(
            name=result.name,
            uid=uid,
            summary=copy.deepcopy(result.summary),
            create_time=now,
            update_time=now,
            etag=self._etag(uid),
        )
        self._results[stored.name] = stored
        return copy.deepcopy(stored)

    def update_result(self, name: str, result: Result) -> Result:
        current = self._results.get(name)
        if current is None:
            raise NotFoundError(f"result {name!r} not found")
        if result.etag and result.etag != current.etag:
            raise ValueError(f"etag mismatch for result {name!r}")
        stored = replace(
            current,
            summary=copy.deepcopy(result.summary),
            update_time=self._now(),
            etag=self._etag(current.uid),
        )
        self._results[name] = stored
        return copy.deepcopy(stored)

    def get_record(self, name: str) -> Record:
        try:
            return copy.deepcopy(self._records[name])
        except KeyError:
            raise NotFoundError(f"record {name!r} not found") from None

    def create_record(self, parent: str, record: Record) -> Record:
        if parent not in self._results:
            raise NotFoundError(f"result {parent!r} not found")
        rec_parent, rec_result, _ = parse_record_name(record.name)
        if format_result_name(rec_parent, rec_result) != parent:
            raise ValueError(f"record {record.name!r} does not belong to {parent!r}")
        if record.name in self._records:
            raise ValueError(f"record {record.name!r} already exists")
        now = self._now()
        uid = str(uuid.uuid4())
        stored = Record(
            name=record.name,
            data=record.data,
            uid=uid,
            create_time=now,
            update_time=now,
            etag=self._etag(uid),
        )
        self._records[stored.name] = stored
        return copy.deepcopy(stored)

    def update_record(self, record: Record, etag: str = "") -> Record:
        current = self._records.get(record.name)
        if current is None:
            raise NotFoundError(f"record {record.name!r} not found")
        if etag and etag != current.etag:
            raise ValueError(f"etag mismatch for record {record.name!r}")
        stored = replace(
            current,
            data=record.data,
            update_time=self._now(),
            etag=self._etag(current.uid),
        )
        self._records[record.name] = stored
        return copy.deepcopy(stored)


def default_name(obj: Any) -> str:
    """The Result/Record name used when none is associated with the object."""
    return obj.uid


def is_top_level_record(obj: Any) -> bool:
    """True if the object is owned by nothing, and so is a Result's primary record."""
    return not obj.owner_references


def result_name(obj: Any) -> str:
    """The Result name for an object, from its annotation, trigger or owner."""
    annotations = obj.annotations or {}
    if annotation.RESULT in annotations:
        return annotations[annotation.RESULT]

    part = ""
    labels = obj.labels or {}
    if _TRIGGER_EVENT_LABEL in labels:
        part = labels[_TRIGGER_EVENT_LABEL]
    else:
        part = next(
            (ref.uid for ref in obj.owner_references if ref.kind.lower() == "pipelinerun"),
            "",
        )
    if not part:
        part = default_name(obj)
    return format_result_name(obj.namespace, part)


def record_name(parent: str, obj: Any) -> str:
    """The Record name for an object within the given Result.

    The record annotation is honoured only for top-level objects, since an
    owner may have propagated its own annotation to its children.
    """
    if is_top_level_record(obj):
        name = (obj.annotations or {}).get(annotation.RECORD)
        if name is not None:
            return name
    return format_record_name(parent, default_name(obj))


def parent_name(obj: Any) -> str:
    """The parent of the object's Result: first part of the result annotation, else namespace."""
    value = (obj.annotations or {}).get(annotation.RESULT)
    if value is not None:
        return value.split("/")[0]
    return obj.namespace


def log_record_name(result: Result, obj: Any) -> str:
    """The name of the log record for an object.

    Taken from the log annotation when it holds a valid log name, otherwise
    an MD5-based UUID of the object's UID within the Result's UID. Empty if
    the Result has no valid UID.
    """
    value = (obj.annotations or {}).get(annotation.LOG)
    if value is not None:
        try:
            _, _, name = parse_log_name(value)
        except ValueError:
            pass
        else:
            return format_record_name(result.name, name)
    try:
        namespace = uuid.UUID(result.uid)
    except ValueError:
        return ""
    return format_record_name(result.name, str(uuid.uuid3(namespace, obj.uid)))


def _timestamp(condition: Condition | None) -> datetime | None:
    if condition is None or condition.is_false():
        return None
    return condition.last_transition_time


class Client:
    """Operations that store run objects across several Results API calls."""

    def __init__(self, results_service: ResultsService, logs_service: Any = None) -> None:
        self.results_service = results_service
        self.logs_service = logs_service

    def _find_result(self, name: str) -> Result | None:
        try:
            return self.results_service.get_result(name)
        except NotFoundError:
            return None

    def _find_record(self, name: str) -> Record | None:
        try:
            return self.results_service.get_record(name)
        except NotFoundError:
            return None

    def put(self, obj: RunObject) -> tuple[Result, Record]:
        """Store the object, creating its Result if needed and upserting its Record."""
        result = self.ensure_result(obj)
        record = self.upsert_record(result.name, obj)
        return result, record

    def ensure_result(self, obj: RunObject) -> Result:
        """Get, create or update the Result for the object."""
        res_name = result_name(obj)
        current = self._find_result(res_name)

        result = Result(name=res_name)
        top_level = is_top_level_record(obj)
        if top_level:
            result.summary = RecordSummary(
                record=record_name(res_name, obj),
                type=type_name(obj),
                status=status(obj.get_condition(SUCCEEDED)),
                start_time=_timestamp(obj.get_condition(READY)),
                end_time=_timestamp(obj.get_condition(SUCCEEDED)),
            )

        if current is None:
            return self.results_service.create_result(parent_name(obj), result)
        if not top_level:
            return current
        if current.summary == result.summary:
            return current
        return self.results_service.update_result(res_name, result)

    def upsert_record(self, parent: str, obj: RunObject) -> Record:
        """Create or update the object's Record; unchanged data returns it as is."""
        rec_name = record_name(parent, obj)
        data = to_proto(obj)
        current = self._find_record(rec_name)
        if current is not None:
            if current.data == data:
                return current
            current.data = data
            return self.results_service.update_record(current, etag=current.etag)
        return self.results_service.create_record(parent, Record(name=rec_name, data=data))

    def put_log(self, obj: RunObject) -> Record:
        """Ensure the object's Result exists and that it has a log record."""
        result = self.ensure_result(obj)
        name = log_record_name(result, obj)
        existing = self._find_record(name)
        if existing is not None:
            return existing
        data = to_log_proto(obj, obj.gvk.kind, name)
        return self.results_service.create_record(result.name, Record(name=name, data=data))

    def get_log_record(self, obj: RunObject) -> Record | None:
        """The object's log record, or None if there is none yet."""
        result = self.ensure_result(obj)
        return self._find_record(log_record_name(result, obj))