"""Settings shared by the run reconcilers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from runwatch.labels import Selector, everything, parse


@dataclass
class Config:
    """Reconciler settings.

    completed_resource_grace_period: negative deletes completed runs at once,
    zero never deletes them, positive deletes them once that much time has
    passed since completion.
    """

    disable_annotation_update: bool = False
    completed_resource_grace_period: timedelta = timedelta(0)
    requeue_interval: timedelta = timedelta(0)
    _label_selector: Selector | None = field(default=None, init=False, repr=False)

    def label_selector(self) -> Selector:
        """The deletion selector, matching everything when none was set."""
        if self._label_selector is None:
            return everything()
        return self._label_selector

    def set_label_selector(self, selector: str) -> None:
        """Parse and keep a deletion selector; raise ValueError if invalid."""
        self._label_selector = parse(selector)