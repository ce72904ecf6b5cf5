from __future__ import annotations

from src.img_responsive.responsive.attrs import AttributeRule, apply_attribute_rules, drop_rules, with_rule


def test_rules_set_override_and_remove() -> None:
    attrs = {"alt": "cat", "class": "old", "srcset": "stale.jpg 100w"}
    rules = (
        AttributeRule("class", "new"),
        AttributeRule("alt", "dog", override=True),
        AttributeRule("loading", "lazy"),
        AttributeRule.removal("srcset"),
    )

    result = apply_attribute_rules(attrs, rules)

    assert result == {"alt": "dog", "class": "old", "loading": "lazy"}
    assert attrs["srcset"] == "stale.jpg 100w"


def test_rules_apply_in_order() -> None:
    rules = (AttributeRule("title", "first"), AttributeRule.removal("title"), AttributeRule("title", "second"))
    assert apply_attribute_rules({}, rules) == {"title": "second"}


def test_with_rule_replaces_same_name_in_place() -> None:
    rules = (AttributeRule("a", "1"), AttributeRule("b", "2"))
    updated = with_rule(rules, AttributeRule("a", "3", override=True))
    assert [rule.name for rule in updated] == ["a", "b"]
    assert updated[0].value == "3"
    assert with_rule(rules, AttributeRule("c"))[-1].name == "c"


def test_drop_rules() -> None:
    rules = (AttributeRule.removal("srcset"), AttributeRule.removal("sizes"), AttributeRule("alt", ""))
    assert drop_rules(rules, "srcset", "sizes") == (AttributeRule("alt", ""),)
