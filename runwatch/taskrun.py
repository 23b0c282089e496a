"""Reconciler for TaskRuns, identified by 'namespace/name' keys."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from runwatch.config import Config
from runwatch.dynamic import ObjectClient, Reconciler, SkipKeyError
from runwatch.leaderelection import NamespacedName, make_promote_func, split_meta_namespace_key
from runwatch.pipelinerun import RunLister

_logger = logging.getLogger(__name__)


class TaskRunReconciler:
    """Stores TaskRuns in the Results API and deletes them once eligible."""

    def __init__(
        self,
        results_service: Any,
        logs_service: Any,
        task_run_lister: RunLister,
        object_client_factory: Callable[[str], ObjectClient],
        config: Config | None = None,
        is_leader_for: Callable[[NamespacedName], bool] | None = None,
    ) -> None:
        self.results_service = results_service
        self.logs_service = logs_service
        self.task_run_lister = task_run_lister
        self.object_client_factory = object_client_factory
        self.config = config if config is not None else Config()
        self.is_leader_for = is_leader_for or (lambda name: True)
        self.promote = make_promote_func(task_run_lister.list)

    def reconcile(self, key: str) -> None:
        """Process the TaskRun with the given key.

        Invalid keys are logged and dropped. Raises SkipKeyError when this
        instance is not the key's leader or the object is gone.
        """
        try:
            namespace, name = split_meta_namespace_key(key)
        except ValueError:
            _logger.error("invalid resource key: %s", key)
            return

        if not self.is_leader_for(NamespacedName(namespace=namespace, name=name)):
            _logger.debug("Skipping TaskRun key because this instance isn't its leader")
            raise SkipKeyError(key)

        _logger.info("Reconciling TaskRun %s", key)

        try:
            task_run = self.task_run_lister.get(namespace, name)
        except LookupError:
            _logger.debug("Skipping key: object is no longer available")
            raise SkipKeyError(key) from None

        dynamic = Reconciler(
            self.results_service,
            self.logs_service,
            self.object_client_factory(namespace),
            self.config,
        )
        dynamic.reconcile(task_run)