"""Result annotations on run objects and the merge patches that set them."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

RESULT = "results.tekton.dev/result"
RECORD = "results.tekton.dev/record"
LOG = "results.tekton.dev/log"
# Marks a finished child run (e.g. a TaskRun owned by a PipelineRun) as stored
# in the API server and so ready to be garbage collected.
CHILD_READY_FOR_DELETION = "results.tekton.dev/childReadyForDeletion"


@dataclass(frozen=True)
class Annotation:
    """A single annotation name and value."""

    name: str
    value: str


def _is_child_and_done(obj: Any) -> bool:
    if not obj.owner_references:
        return False
    is_done = getattr(obj, "is_done", None)
    return callable(is_done) and bool(is_done())


def patch(obj: Any, *args: Annotation) -> bytes:
    """Build a JSON merge patch that sets the given annotations on obj.

    Annotations with empty values are left out; finished child objects are
    also marked as ready for deletion.
    """
    annotations = {a.name: a.value for a in args if a.value}
    if _is_child_and_done(obj):
        annotations[CHILD_READY_FOR_DELETION] = "true"
    data = {"metadata": {"annotations": annotations}}
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")


def is_patched(obj: Any, *args: Annotation) -> bool:
    """True if obj already carries every given annotation with its value."""
    current = obj.annotations or {}
    if _is_child_and_done(obj) and CHILD_READY_FOR_DELETION not in current:
        return False
    return all(current.get(a.name, "") == a.value for a in args)