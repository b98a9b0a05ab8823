"""Exceptions raised by the rules engine."""


class LifeflowError(Exception):
    """Base class for rules engine errors."""


class OwnerNotFoundError(LifeflowError):
    """The account owner a batch was requested for does not exist."""

    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        super().__init__(f"Owner not found: {owner_id}")


class RuleParseError(LifeflowError):
    """A stored rule could not be parsed into its typed form."""

    def __init__(self, rule_id: str, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Rule {rule_id} is invalid: {reason}")
