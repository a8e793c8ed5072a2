"""Entry and attribute selection.

``SelectionPolicy.decide`` applies the criteria in a fixed, short-circuit
order:

    1. under any exclude branch            -> EXCLUDE
    2. include branches set, under none    -> EXCLUDE
    3. matches any exclude filter          -> EXCLUDE
    4. include filters set                 -> INCLUDE iff one matches
    5. otherwise                           -> INCLUDE

The policy holds no per-call state, so a single instance may be shared by
worker threads filtering entries ahead of the (serial) write phase.
Failures from the containment or filter capabilities are raised as
``FilterEvaluationError``; they never turn into a decision.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ldif_export.lib.config import ExportConfig, SelectionCriteria
from ldif_export.lib.dn import DN, is_ancestor_or_equal
from ldif_export.lib.errors import FilterEvaluationError

__all__ = ["Decision", "SelectionPolicy", "OBJECT_CLASS"]

OBJECT_CLASS = "objectclass"

Containment = Callable[[DN, DN], bool]


class Decision(Enum):
    """Outcome of evaluating one entry."""

    INCLUDE = "include"
    EXCLUDE = "exclude"


class SelectionPolicy:
    """Decides which entries and attributes an export keeps.

    Args:
        criteria: Branch, filter and attribute criteria
        containment: ``(branch, dn) -> bool`` capability; defaults to
            plain RDN-suffix comparison
        include_object_classes: Keep the objectClass attribute
        include_operational_attributes: Keep operational attributes
        include_virtual_attributes: Keep virtual attributes
    """

    def __init__(
        self,
        criteria: Optional[SelectionCriteria] = None,
        *,
        containment: Containment = is_ancestor_or_equal,
        include_object_classes: bool = True,
        include_operational_attributes: bool = True,
        include_virtual_attributes: bool = False,
    ) -> None:
        self.criteria = criteria or SelectionCriteria()
        self.containment = containment
        self.include_object_classes = include_object_classes
        self.include_operational_attributes = include_operational_attributes
        self.include_virtual_attributes = include_virtual_attributes

    @classmethod
    def from_config(cls, config: ExportConfig, **kwargs: Any) -> "SelectionPolicy":
        return cls(
            config.criteria,
            include_object_classes=config.include_object_classes,
            include_operational_attributes=config.include_operational_attributes,
            include_virtual_attributes=config.include_virtual_attributes,
            **kwargs,
        )

    def _contains(self, branch: DN, entry: Any, criterion: str) -> bool:
        try:
            return bool(self.containment(branch, entry.dn))
        except Exception as exc:
            raise FilterEvaluationError(
                f"Could not compare {entry.dn} with branch {branch}",
                dn=str(entry.dn),
                criterion=f"{criterion}:{branch}",
                cause=exc,
            ) from exc

    def _matches(self, entry_filter: Any, entry: Any, criterion: str) -> bool:
        try:
            return bool(entry_filter.matches(entry))
        except Exception as exc:
            raise FilterEvaluationError(
                f"Filter {entry_filter} could not be evaluated against {entry.dn}",
                dn=str(entry.dn),
                criterion=f"{criterion}:{entry_filter}",
                cause=exc,
            ) from exc

    def decide(self, entry: Any) -> Decision:
        """Decide whether an entry is exported.

        Raises:
            FilterEvaluationError: A containment or filter check failed
        """
        criteria = self.criteria

        for branch in criteria.exclude_branches:
            if self._contains(branch, entry, "exclude_branches"):
                return Decision.EXCLUDE

        if criteria.include_branches and not any(
            self._contains(branch, entry, "include_branches")
            for branch in criteria.include_branches
        ):
            return Decision.EXCLUDE

        for entry_filter in criteria.exclude_filters:
            if self._matches(entry_filter, entry, "exclude_filters"):
                return Decision.EXCLUDE

        if criteria.include_filters:
            for entry_filter in criteria.include_filters:
                if self._matches(entry_filter, entry, "include_filters"):
                    return Decision.INCLUDE
            return Decision.EXCLUDE

        return Decision.INCLUDE

    def include_entry(self, entry: Any) -> bool:
        return self.decide(entry) is Decision.INCLUDE

    def retain_attribute(self, attribute_type: str) -> bool:
        """Whether an attribute type survives the include/exclude sets."""
        name = attribute_type.lower()
        excluded = self.criteria.exclude_attributes
        included = self.criteria.include_attributes
        return (not excluded or name not in excluded) and (not included or name in included)

    def select_attributes(self, entry: Any) -> Dict[str, List[str]]:
        """Return the attributes of an included entry that get exported."""
        selected: Dict[str, List[str]] = {}
        for name, values in entry.attributes.items():
            lowered = name.lower()
            if lowered == OBJECT_CLASS and not self.include_object_classes:
                continue
            if entry.is_operational(lowered) and not self.include_operational_attributes:
                continue
            if entry.is_virtual(lowered) and not self.include_virtual_attributes:
                continue
            if self.retain_attribute(name):
                selected[name] = values
        return selected
