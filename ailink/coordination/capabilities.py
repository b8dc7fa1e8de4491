"""Capability tags and the subset test used for task matching."""

from typing import Iterable, List, Optional, Union

from ailink.errors import ValidationError


class CapabilitySet(frozenset):
    """
    Immutable set of capability strings.

    Matching is exact and case-sensitive. An agent is capable of a task
    when every required capability is present in the agent's set; an empty
    requirement is satisfied by every agent.
    """

    def __new__(cls, items: Optional[Iterable[str]] = None):
        if items is None:
            items = ()
        elif isinstance(items, str):
            items = (items,)
        values = []
        for item in items:
            if not isinstance(item, str) or not item:
                raise ValidationError(
                    f"Capabilities must be non-empty strings, got {item!r}",
                    {"capability": item},
                )
            values.append(item)
        return super().__new__(cls, values)

    @classmethod
    def coerce(cls, value: Union["CapabilitySet", Iterable[str], None]) -> "CapabilitySet":
        if isinstance(value, CapabilitySet):
            return value
        return cls(value)

    def satisfies(self, required: Iterable[str]) -> bool:
        """True if this set covers every capability in ``required``."""
        return CapabilitySet.coerce(required) <= self

    def to_list(self) -> List[str]:
        return sorted(self)

    def __repr__(self) -> str:
        return f"CapabilitySet({self.to_list()!r})"
