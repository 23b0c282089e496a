"""Reconciliation of run objects into the Results API, with optional clean-up."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from runwatch import annotation
from runwatch.annotation import Annotation, is_patched, patch
from runwatch.config import Config
from runwatch.convert import infer_gvk
from runwatch.objects import SUCCEEDED, PipelineRun, RunObject, TaskRun
from runwatch.results import (
    Client,
    format_log_name,
    format_result_name,
    parse_record_name,
)

_logger = logging.getLogger(__name__)

LOG_TYPE_TASK = "task"
LOG_TYPE_PIPELINE = "pipeline"

_LOG_KINDS = {"TaskRun": LOG_TYPE_TASK, "PipelineRun": LOG_TYPE_PIPELINE}
_FINISHED_REASONS = frozenset({"Succeeded", "Failed"})


class RequeueError(Exception):
    """The object should be processed again after the given delay."""

    def __init__(self, after: timedelta) -> None:
        super().__init__(f"requeue after {after}")
        self.after = after


class PermanentError(Exception):
    """Processing the object failed in a way that retrying will not fix."""


class SkipKeyError(Exception):
    """The key should be dropped without processing."""

    def __init__(self, key: str) -> None:
        super().__init__(f"skipping key {key!r}")
        self.key = key


class ObjectClient(Protocol):
    """Type-agnostic access to the cluster objects being reconciled.

    ``delete`` must raise LookupError when the object no longer exists.
    """

    def patch(self, name: str, data: bytes) -> None:
        """Apply a JSON merge patch to the named object."""

    def delete(self, name: str, uid: str) -> None:
        """Delete the named object, provided its UID still matches."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


def _completion_time(obj: RunObject) -> datetime | None:
    if not isinstance(obj, (PipelineRun, TaskRun)):
        raise PermanentError(
            "error getting completion time from incoming object: "
            f"unrecognized type {type(obj).__name__}"
        )
    return obj.completion_time


class Reconciler:
    """Uploads run objects as Results/Records and optionally deletes them when done.

    ``is_ready_for_deletion`` may be replaced with a predicate taking the
    object; deletion waits until it returns True.
    """

    def __init__(
        self,
        results_service: Any,
        logs_service: Any,
        object_client: ObjectClient,
        config: Config | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.results_client = Client(results_service, logs_service)
        self.object_client = object_client
        self.config = config if config is not None else Config()
        self.clock = clock or _utc_now
        self.is_ready_for_deletion: Callable[[RunObject], bool] = lambda obj: True

    def reconcile(self, obj: RunObject) -> None:
        """Store the object, annotate it and delete it once eligible.

        Raises RequeueError when the object must be processed again later.
        """
        if obj.gvk.empty():
            obj.gvk = infer_gvk(obj)
            _logger.debug("Inferred type %s", obj.gvk)

        started = time.monotonic()
        try:
            result, record = self.results_client.put(obj)
        except Exception:
            _logger.debug("Error upserting record (%.0f ms)", (time.monotonic() - started) * 1000)
            raise

        if self.results_client.logs_service is not None:
            try:
                self._send_log(obj)
            except Exception:
                _logger.exception(
                    "Error sending log for %s %s/%s", obj.gvk.kind, obj.namespace, obj.name
                )
                raise

        _logger.debug(
            "Record %s of result %s upserted (%.0f ms)",
            record.name,
            result.name,
            (time.monotonic() - started) * 1000,
        )
        self._add_results_annotations(
            obj,
            Annotation(annotation.RECORD, record.name),
            Annotation(annotation.RESULT, result.name),
        )
        self._delete_upon_completion(obj)

    def _add_results_annotations(self, obj: RunObject, *annotations: Annotation) -> None:
        if self.config.disable_annotation_update:
            _logger.debug("Skipping annotation patch: annotation update is disabled")
        elif is_patched(obj, *annotations):
            _logger.debug("Skipping annotation patch: annotations are already set")
        else:
            self.object_client.patch(obj.name, patch(obj, *annotations))

    def _delete_upon_completion(self, obj: RunObject) -> None:
        grace_period = self.config.completed_resource_grace_period
        if grace_period == timedelta(0):
            _logger.info("Skipping resource deletion: deletion is disabled")
            return
        if not obj.is_done():
            _logger.debug("Skipping resource deletion: object is not done yet")
            return
        if obj.owner_references:
            _logger.debug("Object is owned by another object; deferring deletion to its owner")
            return

        completion = _completion_time(obj)
        if completion is None:
            _logger.debug("Completion time not set yet; requeuing")
            raise RequeueError(grace_period)

        since_completion = _aware(self.clock()) - _aware(completion)
        if since_completion < grace_period:
            raise RequeueError(grace_period - since_completion)

        selector = self.config.label_selector()
        if not selector.matches(obj.labels):
            _logger.debug("Object does not match label selector %s; requeuing", selector)
            raise RequeueError(self.config.requeue_interval)

        if not self.is_ready_for_deletion(obj):
            raise RequeueError(self.config.requeue_interval)

        _logger.info("Deleting object %s/%s (uid %s)", obj.namespace, obj.name, obj.uid)
        try:
            self.object_client.delete(obj.name, obj.uid)
        except LookupError:
            pass

    def _send_log(self, obj: RunObject) -> None:
        condition = obj.get_condition(SUCCEEDED)
        gvk = obj.gvk
        if (
            gvk.empty()
            or gvk.kind not in _LOG_KINDS
            or condition is None
            or condition.type != SUCCEEDED
            or condition.reason not in _FINISHED_REASONS
        ):
            return

        existing = self.results_client.get_log_record(obj)
        if existing is not None:
            # Streaming already started for this object.
            self._add_results_annotations(
                obj, Annotation(annotation.LOG, self._log_name(existing.name))
            )
            return

        record = self.results_client.put_log(obj)
        log_name = self._log_name(record.name)
        log_type = _LOG_KINDS[gvk.kind]
        self._add_results_annotations(obj, Annotation(annotation.LOG, log_name))

        _logger.debug("Streaming log started for %s %s/%s", gvk.kind, obj.namespace, obj.name)
        threading.Thread(
            target=self._stream_logs, args=(obj, log_type, log_name), daemon=True
        ).start()

    @staticmethod
    def _log_name(record_name: str) -> str:
        parent, result, record = parse_record_name(record_name)
        return format_log_name(format_result_name(parent, result), record)

    def _stream_logs(self, obj: RunObject, log_type: str, log_name: str) -> None:
        try:
            self.results_client.logs_service.stream_logs(obj, log_type, log_name)
        except Exception:
            _logger.exception(
                "Error streaming log for %s %s/%s", obj.gvk.kind, obj.namespace, obj.name
            )
        _logger.debug("Streaming log completed for %s %s/%s", obj.gvk.kind, obj.namespace, obj.name)