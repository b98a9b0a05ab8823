"""Typed automation rules and trigger matching."""

from lifeflow.rules.matcher import RuleMatcher, evaluate_condition
from lifeflow.rules.models import (
    ActionKind,
    ConditionField,
    ConditionOperator,
    Rule,
    RuleAction,
    RuleTrigger,
    TriggerCondition,
    UnsupportedAction,
    parse_action,
    parse_rule,
)

__all__ = [
    "ActionKind",
    "ConditionField",
    "ConditionOperator",
    "Rule",
    "RuleAction",
    "RuleMatcher",
    "RuleTrigger",
    "TriggerCondition",
    "UnsupportedAction",
    "evaluate_condition",
    "parse_action",
    "parse_rule",
]
