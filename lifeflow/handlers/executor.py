"""
Action executor.

Evaluates every rule against a classified message and runs the handler
for each rule that fires. One ExecutionResult comes back per rule,
including rules that did not fire. Handler failures are recorded in the
result; they never stop the remaining rules.
"""

from datetime import datetime

import httpx

from lifeflow.anonymizer import extract_message_data
from lifeflow.config import Settings
from lifeflow.core.logging import get_logger
from lifeflow.core.models import Classification, ExecutionResult, ExtractedData, RawMessage, utcnow
from lifeflow.core.storage import Storage
from lifeflow.handlers.base import ActionContext, BaseActionHandler
from lifeflow.handlers.registry import get_all_handlers, missing_handlers
from lifeflow.rules.matcher import RuleMatcher
from lifeflow.rules.models import ActionKind, Rule, UnsupportedAction

log = get_logger(__name__)


class ActionExecutor:
    """Runs matched rules' actions against storage."""

    def __init__(
        self,
        storage: Storage,
        settings: Settings,
        matcher: RuleMatcher | None = None,
        http_client: httpx.Client | None = None,
    ):
        missing = missing_handlers()
        if missing:
            raise RuntimeError(
                f"No handler registered for actions: {', '.join(k.value for k in missing)}"
            )

        self.storage = storage
        self.settings = settings
        self.matcher = matcher or RuleMatcher(settings.min_confidence)
        self.http_client = http_client or httpx.Client(timeout=settings.webhook_timeout)
        self.handlers: dict[ActionKind, BaseActionHandler] = {
            kind: handler_class(storage, settings, self.http_client)
            for kind, handler_class in get_all_handlers().items()
        }

    def extract(self, message: RawMessage, classification: Classification) -> ExtractedData:
        """Local values first, gaps filled from the classification."""
        return extract_message_data(message).merged_with(classification.extracted_data)

    def execute(
        self,
        owner_id: str,
        rule: Rule,
        message: RawMessage,
        classification: Classification,
        extracted: ExtractedData | None = None,
        now: datetime | None = None,
    ) -> ExecutionResult:
        """
        Run one triggered rule's action.

        Never raises; failures come back in ExecutionResult.error.
        """
        now = now or utcnow()
        action = rule.action

        if isinstance(action, UnsupportedAction):
            log.warning("unsupported_action", rule_id=rule.id, action=action.type, reason=action.reason)
            return ExecutionResult(
                rule_id=rule.id,
                rule_name=rule.name,
                triggered=True,
                action_executed=False,
                action_type=action.type,
                error=action.reason,
                timestamp=now,
            )

        ctx = ActionContext(
            owner_id=owner_id,
            rule=rule,
            message=message,
            classification=classification,
            extracted=extracted or self.extract(message, classification),
            now=now,
        )
        outcome = self.handlers[action.kind].run(ctx)

        if outcome.success:
            self._record_execution(rule, now)
            log.info(
                "rule_executed",
                rule_id=rule.id,
                action=action.kind.value,
                result=outcome.result.to_dict() if outcome.result else None,
                created=len(outcome.created),
            )

        return ExecutionResult(
            rule_id=rule.id,
            rule_name=rule.name,
            triggered=True,
            action_executed=outcome.success,
            action_type=action.kind.value,
            result=outcome.result,
            created=outcome.created,
            detail=outcome.detail,
            error=outcome.error,
            timestamp=now,
        )

    def evaluate(
        self,
        owner_id: str,
        rules: list[Rule],
        message: RawMessage,
        classification: Classification,
    ) -> list[ExecutionResult]:
        """Evaluate all rules in order, executing those whose trigger matches."""
        extracted = None
        results = []

        for rule in rules:
            if not self.matcher.matches(rule, message, classification):
                results.append(ExecutionResult(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    triggered=False,
                    action_executed=False,
                ))
                continue

            if extracted is None:
                extracted = self.extract(message, classification)
            results.append(self.execute(owner_id, rule, message, classification, extracted))

        return results

    def _record_execution(self, rule: Rule, executed_at: datetime) -> None:
        try:
            self.storage.record_rule_execution(rule.id, executed_at)
        except Exception as e:
            # Stats only, never fails the action
            log.warning("rule_stats_update_failed", rule_id=rule.id, error=str(e))

    def close(self):
        """Close the HTTP client."""
        self.http_client.close()
