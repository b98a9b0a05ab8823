"""
Rule trigger evaluation.

Pure: reads the message and its classification, never writes anything.
"""

import re

from lifeflow.anonymizer import extract_domain
from lifeflow.core.models import Classification, RawMessage
from lifeflow.rules.models import ConditionField, ConditionOperator, Rule, TriggerCondition

DEFAULT_MIN_CONFIDENCE = 0.6


def field_value(field: ConditionField, message: RawMessage, classification: Classification) -> str:
    """The string a condition on field compares against."""
    if field == ConditionField.SENDER:
        return message.sender
    if field == ConditionField.RECIPIENT:
        return ", ".join(message.recipients)
    if field == ConditionField.SUBJECT:
        return message.subject
    if field == ConditionField.BODY:
        return message.body
    if field == ConditionField.CATEGORY:
        return classification.category.value
    if field == ConditionField.SENDER_DOMAIN:
        return extract_domain(message.sender)
    return ""


def evaluate_condition(
    condition: TriggerCondition, message: RawMessage, classification: Classification
) -> bool:
    """
    Evaluate one condition. Comparisons ignore case unless the condition
    is case sensitive; an invalid regex never matches.
    """
    raw = field_value(condition.field, message, classification)
    operator = condition.operator

    if operator == ConditionOperator.REGEX:
        flags = 0 if condition.case_sensitive else re.IGNORECASE
        try:
            return re.search(condition.value, raw, flags) is not None
        except re.error:
            return False

    value = condition.value
    if not condition.case_sensitive:
        raw, value = raw.lower(), value.lower()

    if operator == ConditionOperator.CONTAINS:
        return value in raw
    if operator == ConditionOperator.NOT_CONTAINS:
        return value not in raw
    if operator == ConditionOperator.EQUALS:
        return raw == value
    if operator == ConditionOperator.STARTS_WITH:
        return raw.startswith(value)
    if operator == ConditionOperator.ENDS_WITH:
        return raw.endswith(value)
    return False


class RuleMatcher:
    """Decides whether a rule fires for a classified message."""

    def __init__(self, min_confidence: float = DEFAULT_MIN_CONFIDENCE):
        self.min_confidence = min_confidence

    def matches(self, rule: Rule, message: RawMessage, classification: Classification) -> bool:
        """
        A rule matches when it is active, its category (if any) equals the
        classification's, every condition holds and the classification is
        at least min_confidence.
        """
        if not rule.is_active:
            return False

        if classification.confidence < self.min_confidence:
            return False

        trigger = rule.trigger
        if trigger.category is not None and trigger.category != classification.category:
            return False

        return all(
            evaluate_condition(condition, message, classification)
            for condition in trigger.conditions
        )
