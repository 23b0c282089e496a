"""Reconciler for PipelineRuns, identified by 'namespace/name' keys."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from runwatch.annotation import CHILD_READY_FOR_DELETION
from runwatch.config import Config
from runwatch.dynamic import ObjectClient, Reconciler, SkipKeyError
from runwatch.labels import Selector
from runwatch.leaderelection import NamespacedName, make_promote_func, split_meta_namespace_key
from runwatch.objects import PipelineRun, TaskRun

_logger = logging.getLogger(__name__)


class RunLister(Protocol):
    """Read access to cached run objects.

    ``get`` must raise LookupError when the object does not exist.
    """

    def get(self, namespace: str, name: str) -> Any:
        """Return the named object."""

    def list(self, selector: Selector) -> list[Any]:
        """Return every object matching the selector."""


def _is_marked_as_ready_for_deletion(task_run: TaskRun) -> bool:
    return CHILD_READY_FOR_DELETION in (task_run.annotations or {})


class PipelineRunReconciler:
    """Stores PipelineRuns in the Results API and deletes them once eligible.

    A PipelineRun is only deleted after all its TaskRuns have been marked as
    ready for deletion, so that no TaskRun is lost before it is archived.
    """

    def __init__(
        self,
        results_service: Any,
        logs_service: Any,
        pipeline_run_lister: RunLister,
        task_run_lister: RunLister,
        object_client_factory: Callable[[str], ObjectClient],
        config: Config | None = None,
        is_leader_for: Callable[[NamespacedName], bool] | None = None,
    ) -> None:
        self.results_service = results_service
        self.logs_service = logs_service
        self.pipeline_run_lister = pipeline_run_lister
        self.task_run_lister = task_run_lister
        self.object_client_factory = object_client_factory
        self.config = config if config is not None else Config()
        self.is_leader_for = is_leader_for or (lambda name: True)
        self.promote = make_promote_func(pipeline_run_lister.list)

    def reconcile(self, key: str) -> None:
        """Process the PipelineRun with the given key.

        Invalid keys are logged and dropped. Raises SkipKeyError when this
        instance is not the key's leader or the object is gone.
        """
        _logger.info("Reconciling PipelineRun %s", key)
        try:
            namespace, name = split_meta_namespace_key(key)
        except ValueError:
            _logger.error("invalid resource key: %s", key)
            return

        if not self.is_leader_for(NamespacedName(namespace=namespace, name=name)):
            _logger.debug("Skipping PipelineRun key because this instance isn't its leader")
            raise SkipKeyError(key)

        try:
            pipeline_run = self.pipeline_run_lister.get(namespace, name)
        except LookupError:
            _logger.debug("Skipping key: object is no longer available")
            raise SkipKeyError(key) from None

        dynamic = Reconciler(
            self.results_service,
            self.logs_service,
            self.object_client_factory(namespace),
            self.config,
        )
        dynamic.is_ready_for_deletion = self.are_all_underlying_task_runs_ready_for_deletion
        dynamic.reconcile(pipeline_run)

    def are_all_underlying_task_runs_ready_for_deletion(self, obj: Any) -> bool:
        """True if every TaskRun of the PipelineRun that still exists is marked for deletion."""
        if not isinstance(obj, PipelineRun):
            raise TypeError(
                f"unexpected object: want PipelineRun, but got {type(obj).__name__}"
            )

        if obj.child_references:
            names = [reference.name for reference in obj.child_references]
        else:
            names = list(obj.task_runs)

        for name in names:
            try:
                task_run = self.task_run_lister.get(obj.namespace, name)
            except LookupError:
                _logger.debug("TaskRun %s/%s is no longer available - ignoring", obj.namespace, name)
                continue
            if not _is_marked_as_ready_for_deletion(task_run):
                _logger.debug(
                    "TaskRun %s/%s isn't yet ready to be deleted - the annotation %s is missing",
                    task_run.namespace,
                    task_run.name,
                    CHILD_READY_FOR_DELETION,
                )
                return False
        return True