"""Caller-supplied attribute rules applied to rewritten image tags."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Tuple

__all__ = [
    "AttributeRule",
    "SRCSET_MANAGED_ATTRIBUTES",
    "apply_attribute_rules",
    "drop_rules",
    "with_rule",
]

SRCSET_MANAGED_ATTRIBUTES = ("srcset", "sizes")


@dataclass(frozen=True)
class AttributeRule:
    """
    Set or remove one attribute.

    Removal is unconditional when ``remove`` is set; otherwise ``value`` is written
    when the attribute is absent or ``override`` is true.
    """

    name: str
    value: str = ""
    override: bool = False
    remove: bool = False

    @classmethod
    def removal(cls, name: str) -> "AttributeRule":
        return cls(name=name, remove=True)


def apply_attribute_rules(attrs: Mapping[str, str], rules: Iterable[AttributeRule]) -> Dict[str, str]:
    """Return a copy of *attrs* with *rules* applied in order."""

    result = dict(attrs)
    for rule in rules:
        if rule.remove:
            result.pop(rule.name, None)
            continue
        if rule.name not in result or rule.override:
            result[rule.name] = rule.value
    return result


def with_rule(rules: Tuple[AttributeRule, ...], rule: AttributeRule) -> Tuple[AttributeRule, ...]:
    """Add *rule*, replacing an existing rule for the same attribute in place."""

    replaced = False
    updated = []
    for existing in rules:
        if existing.name == rule.name:
            updated.append(rule)
            replaced = True
        else:
            updated.append(existing)
    if not replaced:
        updated.append(rule)
    return tuple(updated)


def drop_rules(rules: Tuple[AttributeRule, ...], *names: str) -> Tuple[AttributeRule, ...]:
    return tuple(rule for rule in rules if rule.name not in names)
