"""Helpers for leader election in the run controllers."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from runwatch.labels import Selector, everything


@dataclass(frozen=True)
class NamespacedName:
    """The namespace and name that identify an object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


Lister = Callable[[Selector], Iterable[Any]]
Enqueue = Callable[[Any, NamespacedName], None]


def make_promote_func(lister: Lister) -> Callable[[Any, Enqueue], None]:
    """Build the function run when this instance is promoted to leader of a bucket.

    It lists every object and enqueues each one into the bucket; errors from
    the lister propagate.
    """

    def promote(bucket: Any, enqueue: Enqueue) -> None:
        for obj in lister(everything()):
            enqueue(bucket, NamespacedName(namespace=obj.namespace, name=obj.name))

    return promote


def split_meta_namespace_key(key: str) -> tuple[str, str]:
    """Split a 'namespace/name' key; a key without a slash has no namespace."""
    parts = key.split("/")
    if len(parts) == 1:
        return "", parts[0]
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(f"unexpected key format: {key!r}")