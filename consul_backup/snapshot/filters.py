"""
Prefix-based key filtering for exports.

A rule set is either an exclusion list or an inclusion list, never both.
Matching is a literal string-prefix test.

Invariants:
    - Exclusion takes effect whenever it is non-empty
    - An empty rule set keeps every key
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..errors import UsageError


@dataclass(frozen=True)
class PrefixRules:
    """Inclusion or exclusion prefixes for one export.

    Attributes:
        exclude: Drop keys starting with any of these
        include: Keep only keys starting with any of these
    """

    exclude: tuple[str, ...] = ()
    include: tuple[str, ...] = ()

    @classmethod
    def from_lists(
        cls,
        exclude: Iterable[str] | None = None,
        include: Iterable[str] | None = None,
    ) -> PrefixRules:
        """Build validated rules from option lists."""
        rules = cls(exclude=tuple(exclude or ()), include=tuple(include or ()))
        rules.validate()
        return rules

    @property
    def is_empty(self) -> bool:
        return not self.exclude and not self.include

    def validate(self) -> None:
        """Reject rule sets populating both modes.

        Raises:
            UsageError: If exclude and include are both non-empty
        """
        if self.exclude and self.include:
            raise UsageError("--exclude-prefix and --include-prefix cannot be used together")


def starts_with_any(prefixes: Iterable[str], key: str) -> bool:
    """Whether key starts with any of the prefixes."""
    for prefix in prefixes:
        if key.startswith(prefix):
            return True
    return False


def passes(key: str, rules: PrefixRules) -> bool:
    """Decide whether a key is kept by the rule set."""
    if rules.exclude:
        return not starts_with_any(rules.exclude, key)
    if rules.include:
        return starts_with_any(rules.include, key)
    return True
