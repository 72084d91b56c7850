"""Attribute exclusion rules applied while parsing metadata dumps."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from ..config import ViewerConfig

__all__ = ["ExclusionRules"]


@dataclass(frozen=True, slots=True)
class ExclusionRules:
    """Decide which attribute names are hidden from the rendered tree."""

    names: frozenset[str]
    pattern: re.Pattern[str] | None

    @classmethod
    def build(cls, names: Iterable[str] = (), patterns: Iterable[str] = ()) -> ExclusionRules:
        alternatives = [f"(?:{pattern})" for pattern in patterns if pattern]
        compiled = re.compile("|".join(alternatives)) if alternatives else None
        return cls(frozenset(names), compiled)

    @classmethod
    def from_config(cls, config: ViewerConfig) -> ExclusionRules:
        return cls.build(config.excluded_names, config.excluded_patterns)

    def excludes(self, name: str) -> bool:
        if name in self.names:
            return True
        return self.pattern is not None and self.pattern.search(name) is not None
