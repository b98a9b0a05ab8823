"""
Batch processor.

Drives anonymize -> classify -> match -> execute over one owner's
messages, one message at a time. A ProcessedMessageRecord is written
only after a message's whole cycle succeeded, so a message that fails
part way is picked up again by the next batch.
"""

import argparse
import json
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from lifeflow.anonymizer import anonymize
from lifeflow.classifiers import BaseClassifier, LocalClassifier, get_classifier
from lifeflow.config import Settings
from lifeflow.core.database import Database
from lifeflow.core.exceptions import OwnerNotFoundError
from lifeflow.core.logging import bind_context, clear_context, configure_logging, get_logger
from lifeflow.core.models import (
    BatchResult,
    ClassificationOutcome,
    ExecutionResult,
    MessageResult,
    ProcessedMessageRecord,
    RawMessage,
    as_utc,
    utcnow,
)
from lifeflow.core.storage import Storage
from lifeflow.handlers import ActionExecutor
from lifeflow.processors.base import BaseProcessor
from lifeflow.rules.models import Rule, UnsupportedAction

log = get_logger(__name__)


@dataclass
class BatchOptions:
    """Per-run options; None means use the settings default."""

    max_messages: int | None = None
    since_hours: int | None = None
    persist: bool | None = None
    local_only: bool = False


class BatchProcessor(BaseProcessor):
    """
    Rules engine batch processor.

    Runs sequentially: a message's full cycle completes before the next
    message starts. Batches for the same owner must not run concurrently.
    """

    def __init__(
        self,
        storage: Storage,
        settings: Settings,
        classifier: BaseClassifier | None = None,
        executor: ActionExecutor | None = None,
    ):
        self.storage = storage
        self.settings = settings
        self.classifier = classifier or get_classifier(settings)
        self.executor = executor or ActionExecutor(storage, settings)
        self._local = LocalClassifier()

    def process(
        self,
        owner_id: str,
        messages: Iterable[RawMessage],
        options: BatchOptions | None = None,
    ) -> BatchResult:
        """
        Process an ordered message sequence for one owner.

        Raises:
            OwnerNotFoundError: if the owner does not exist
            Storage errors from owner lookup, rule loading or the dedup
            check propagate; everything else is counted per message.
        """
        options = options or BatchOptions()
        persist = self.settings.persist_processed if options.persist is None else options.persist
        classifier = self._local if options.local_only else self.classifier

        batch = BatchResult(owner_id=owner_id)

        if not self.storage.owner_exists(owner_id):
            raise OwnerNotFoundError(owner_id)

        rules = self.storage.get_active_rules(owner_id)
        selected = self._select(messages, options, batch.started_at)

        log.info(
            "batch_started",
            owner_id=owner_id,
            messages=len(selected),
            rules=len(rules),
            persist=persist,
            local_only=options.local_only,
        )

        seen: set[str] = set()
        for message in selected:
            batch.processed += 1

            if message.id in seen or self.storage.find_processed_message(owner_id, message.id):
                batch.skipped += 1
                batch.results.append(MessageResult(message_id=message.id, skipped=True))
                log.debug("message_skipped", owner_id=owner_id, message_id=message.id)
                continue
            seen.add(message.id)

            result = MessageResult(message_id=message.id)
            try:
                bind_context(owner_id=owner_id, message_id=message.id)
                self._process_single(owner_id, message, rules, classifier, persist, result)
                batch.succeeded += 1

                for execution in result.rules_executed:
                    for ref in execution.created:
                        batch.created[ref.kind] += 1

            except Exception as e:
                log.error("process_message_error", error=str(e))
                result.error = str(e)
                batch.errors += 1

            finally:
                clear_context()

            batch.results.append(result)

        batch.finished_at = utcnow()
        log.info(
            "batch_complete",
            owner_id=owner_id,
            processed=batch.processed,
            success=batch.succeeded,
            errors=batch.errors,
            skipped=batch.skipped,
            duration_ms=batch.duration_ms,
            created={kind.value: count for kind, count in batch.created.items() if count},
        )
        return batch

    def _select(
        self, messages: Iterable[RawMessage], options: BatchOptions, now: datetime
    ) -> list[RawMessage]:
        """Apply the recency window, then the message cap, keeping input order."""
        since_hours = self.settings.since_hours if options.since_hours is None else options.since_hours
        max_messages = self.settings.max_messages if options.max_messages is None else options.max_messages

        selected = list(messages)
        if since_hours and since_hours > 0:
            cutoff = now - timedelta(hours=since_hours)
            selected = [m for m in selected if as_utc(m.received_at) >= cutoff]
        if max_messages is not None and max_messages >= 0:
            selected = selected[:max_messages]
        return selected

    def _process_single(
        self,
        owner_id: str,
        message: RawMessage,
        rules: list[Rule],
        classifier: BaseClassifier,
        persist: bool,
        result: MessageResult,
    ) -> None:
        """Classify, run rules and (optionally) mark one message processed."""
        outcome: ClassificationOutcome = classifier.classify(anonymize(message))
        classification = outcome.classification
        result.classification = classification
        result.classification_source = outcome.source

        log.info(
            "message_classified",
            category=classification.category.value,
            confidence=classification.confidence,
            source=outcome.source.value,
            fallback_reason=outcome.fallback_reason,
        )

        result.rules_executed = self.executor.evaluate(owner_id, rules, message, classification)

        if persist:
            self.storage.save_processed_message(ProcessedMessageRecord(
                owner_id=owner_id,
                external_id=message.id,
                category=classification.category,
                confidence=classification.confidence,
                classification_source=outcome.source,
                results=[r.to_dict() for r in result.rules_executed],
            ))

    def preview(self, owner_id: str, message: RawMessage, local_only: bool = False) -> MessageResult:
        """
        Show which active rules would fire for a message.

        Nothing is executed and no processed-message record is written.
        """
        if not self.storage.owner_exists(owner_id):
            raise OwnerNotFoundError(owner_id)

        classifier = self._local if local_only else self.classifier
        outcome = classifier.classify(anonymize(message))
        classification = outcome.classification
        matcher = self.executor.matcher

        executions = []
        for rule in self.storage.get_active_rules(owner_id):
            action = rule.action
            triggered = matcher.matches(rule, message, classification)
            executions.append(ExecutionResult(
                rule_id=rule.id,
                rule_name=rule.name,
                triggered=triggered,
                action_executed=False,
                action_type=action.type if triggered else None,
                error=action.reason if triggered and isinstance(action, UnsupportedAction) else None,
            ))

        return MessageResult(
            message_id=message.id,
            classification=classification,
            classification_source=outcome.source,
            rules_executed=executions,
        )


    def close(self):
        """Close the classifier and executor HTTP clients."""
        try:
            self.classifier.close()
        finally:
            self.executor.close()

def load_messages(path: str) -> list[RawMessage]:
    """Read a JSON file holding a list of messages (or {"messages": [...]})."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("messages", [])
    return [RawMessage.from_dict(item) for item in data]


def main():
    """CLI entry point for running one batch from a JSON message file."""
    parser = argparse.ArgumentParser(
        description="Run the rules engine over a JSON file of messages for one owner"
    )
    parser.add_argument("owner_id", help="Owner the messages belong to")
    parser.add_argument("messages_file", help="JSON file with a list of messages")
    parser.add_argument(
        "--max-messages",
        type=int,
        default=None,
        help="Maximum number of messages to process (default from settings)",
    )
    parser.add_argument(
        "--since-hours",
        type=int,
        default=None,
        help="Only process messages received in the last N hours; 0 disables the window",
    )
    parser.add_argument(
        "--no-persist",
        action="store_true",
        help="Do not write processed-message records (messages will be processed again)",
    )
    parser.add_argument(
        "--local-only",
        action="store_true",
        help="Skip the inference endpoint and classify locally",
    )
    parser.add_argument(
        "--init-schema",
        action="store_true",
        help="Create database tables before processing",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default from settings)",
    )

    args = parser.parse_args()

    settings = Settings()
    configure_logging(log_level=args.log_level or settings.log_level, json_output=settings.json_logs)

    db = Database(settings)
    if args.init_schema:
        db.init_schema()

    processor = BatchProcessor(db, settings)
    options = BatchOptions(
        max_messages=args.max_messages,
        since_hours=args.since_hours,
        persist=False if args.no_persist else None,
        local_only=args.local_only,
    )

    try:
        result = processor.process(args.owner_id, load_messages(args.messages_file), options)
    except OwnerNotFoundError as e:
        log.error("owner_not_found", owner_id=e.owner_id)
        sys.exit(1)
    finally:
        processor.close()

    print(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    main()
