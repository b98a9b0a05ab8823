"""
Processing statistics over an owner's processed-message records.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from lifeflow.core.models import utcnow
from lifeflow.core.storage import Storage


@dataclass
class ProcessingStats:
    owner_id: str
    days: int
    total: int = 0
    rules_triggered: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    by_source: dict[str, int] = field(default_factory=dict)
    by_day: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ownerId": self.owner_id,
            "days": self.days,
            "total": self.total,
            "rulesTriggered": self.rules_triggered,
            "byCategory": self.by_category,
            "bySource": self.by_source,
            "byDay": self.by_day,
        }


def processing_stats(
    storage: Storage, owner_id: str, days: int = 7, now: datetime | None = None
) -> ProcessingStats:
    """
    Summarise the owner's processed messages from the last `days` days.

    by_day is keyed by ISO date and sorted oldest first.
    """
    now = now or utcnow()
    records = storage.list_processed_messages(owner_id, since=now - timedelta(days=days))

    categories: Counter = Counter()
    sources: Counter = Counter()
    per_day: Counter = Counter()
    triggered = 0
    for record in records:
        categories[record.category.value] += 1
        sources[record.classification_source.value] += 1
        per_day[record.processed_at.date().isoformat()] += 1
        triggered += record.rules_triggered

    return ProcessingStats(
        owner_id=owner_id,
        days=days,
        total=len(records),
        rules_triggered=triggered,
        by_category=dict(categories.most_common()),
        by_source=dict(sources),
        by_day=dict(sorted(per_day.items())),
    )
