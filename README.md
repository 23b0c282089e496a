# runwatch

`runwatch` stores pipeline runs and task runs in a results service. Each run
becomes a *result* that holds one or more *records*. Once a run is complete,
`runwatch` can also delete it after a grace period.

## Modules

- `runwatch.objects` defines the run objects:
  - `TaskRun` and `PipelineRun`, both subclasses of `RunObject`.
  - Their parts: `Condition`, `OwnerReference`, `ChildReference` and
    `GroupVersionKind`.
  - `RunObject.to_dict()` gives the object's JSON form.
  - `RunObject.is_done()` tells whether the `Succeeded` condition is set and
    no longer unknown.
- `runwatch.convert` prepares runs for storage:
  - `to_proto` turns a run into a typed JSON `Payload`.
  - `to_log_proto` builds the payload of a run's log record.
  - `type_name` gives a run's type, for example `tekton.dev/v1beta1.TaskRun`.
  - `status` maps the `Succeeded` condition onto a `RecordStatus`: `SUCCESS`,
    `FAILURE`, `TIMEOUT`, `CANCELLED` or `UNKNOWN`.
- `runwatch.results` talks to the results service:
  - `ResultsService` is an in-memory store of `Result` and `Record` objects.
    Lookups of missing entries raise `NotFoundError`.
  - `Client.put` creates the run's result if it is missing. For top-level
    runs (runs with no owner) it also keeps the result's `RecordSummary` up
    to date. It then creates the run's record, or updates it when the data
    has changed.
  - `Client.put_log` and `Client.get_log_record` manage a run's log record.
  - The naming helpers are `result_name`, `record_name`, `parent_name`,
    `log_record_name`, `format_result_name`, `format_record_name`,
    `format_log_name`, `parse_record_name` and `parse_log_name`.
- `runwatch.annotation` handles the result, record and log identifiers that
  are written back onto a run:
  - `patch` builds the JSON merge patch that writes them.
  - `is_patched` tells whether that patch is still needed.
  - Finished child runs are also marked with `CHILD_READY_FOR_DELETION`.
- `runwatch.labels` parses Kubernetes-style label selectors into a
  `Selector`. The supported forms are `a=b`, `a==b`, `a!=b`, `a in (x,y)`,
  `a notin (x)`, `a`, `!a`, `a>1` and `a<1`.
- `runwatch.config.Config` holds the reconciler settings.
- `runwatch.dynamic.Reconciler` processes a single run object:
  - It uploads the run and patches its annotations.
  - Once the grace period has passed, the label selector matches and
    `is_ready_for_deletion` returns true, it deletes the completed run.
- `runwatch.pipelinerun.PipelineRunReconciler` and
  `runwatch.taskrun.TaskRunReconciler` look up a run by its `namespace/name`
  key and reconcile it.
  - A pipeline run is deleted only after every task run it lists that still
    exists carries the `CHILD_READY_FOR_DELETION` annotation.
- `runwatch.leaderelection` provides `split_meta_namespace_key`,
  `NamespacedName` and `make_promote_func`. The promote function lists every
  object and enqueues each one when this instance becomes leader of a bucket.

## Configuration

```python
from datetime import timedelta
from runwatch.config import Config

config = Config(
    disable_annotation_update=False,
    completed_resource_grace_period=timedelta(minutes=10),
    requeue_interval=timedelta(seconds=30),
)
config.set_label_selector("team=build,env in (ci, nightly)")
```

The grace period decides what happens to completed runs:

| Grace period | Effect |
|--------------|--------|
| zero | completed runs are never deleted |
| negative | completed runs are deleted immediately |
| positive | completed runs are deleted once that long has passed since completion |

If no label selector is set, every run matches. An invalid selector raises
`ValueError`.

## Wiring a reconciler

A reconciler needs three collaborators, all supplied by you:

- **A lister.** It has `get(namespace, name)`, which raises `LookupError` when
  the run is missing, and `list(selector)`.
- **An object client factory.** It takes a namespace and returns an object
  with two methods:
  - `patch(name, data)` applies a JSON merge patch.
  - `delete(name, uid)` deletes the object and raises `LookupError` if it is
    already gone.
- **Optionally, a logs service.** This is an object with
  `stream_logs(obj, log_type, log_name)`.
  - When one is given, finished runs get a log record and a log annotation.
  - `stream_logs` is then called in a background thread.

Outcomes are reported as exceptions:

- `RequeueError` means process the key again later. Its `after` attribute
  holds the delay as a `timedelta`.
- `SkipKeyError` means drop the key. It is raised when this instance is not
  the key's leader, or when the run no longer exists.
- `PermanentError` means retrying will not help, for example on an
  unrecognised object type.

```python
from runwatch.dynamic import RequeueError
from runwatch.objects import TaskRun
from runwatch.results import ResultsService
from runwatch.taskrun import TaskRunReconciler


class Lister:
    def __init__(self, runs):
        self.runs = {(run.namespace, run.name): run for run in runs}

    def get(self, namespace, name):
        return self.runs[(namespace, name)]  # KeyError is a LookupError

    def list(self, selector):
        return [run for run in self.runs.values() if selector.matches(run.labels)]


class ObjectClient:
    def patch(self, name, data):
        ...

    def delete(self, name, uid):
        ...


reconciler = TaskRunReconciler(
    results_service=ResultsService(),
    logs_service=None,
    task_run_lister=Lister([TaskRun(name="build", namespace="ns", uid="build-uid")]),
    object_client_factory=lambda namespace: ObjectClient(),
    config=config,
    is_leader_for=lambda namespaced_name: True,
)

try:
    reconciler.reconcile("ns/build")
except RequeueError as err:
    print("try again in", err.after)
```

## What the package does not do

- **It does not watch a cluster.** There is no informer, no work queue and no
  controller loop. You pass keys to `reconcile` yourself and act on the
  exceptions it raises.
- **It does not persist results.** `ResultsService` keeps results and records
  in memory only, and there is no network server or database behind it.
- **It does not read container logs.** Log content is left entirely to the
  logs service you supply.

## Tests

```
pip install -e .[test]
pytest
```