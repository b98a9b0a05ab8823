"""Unit tests for the batch processor."""

from datetime import timedelta

import httpx
import pytest

from lifeflow.classifiers import LocalClassifier, RemoteClassifier
from lifeflow.core.exceptions import OwnerNotFoundError
from lifeflow.core.models import (
    Category,
    ClassificationSource,
    OrderStatus,
    PackageStatus,
    RecordKind,
    utcnow,
)
from lifeflow.handlers import ActionExecutor
from lifeflow.processors import BatchOptions, BatchProcessor
from lifeflow.processors.batch import load_messages


class ExplodingClassifier(LocalClassifier):
    """Local classifier that fails for selected message ids."""

    def __init__(self, fail_ids):
        self.fail_ids = set(fail_ids)

    def classify(self, message):
        if message.id in self.fail_ids:
            raise RuntimeError(f"classifier crashed on {message.id}")
        return super().classify(message)


@pytest.fixture
def processor(storage, settings):
    return BatchProcessor(storage, settings)


class TestScenarios:
    """End-to-end runs over the in-memory storage."""

    def test_delivery_notice_creates_package(self, processor, storage, make_rule, postnl_message):
        make_rule(trigger={"category": "delivery"}, action={"type": "track_package"})

        batch = processor.process("owner-1", [postnl_message])

        assert batch.processed == 1
        assert batch.succeeded == 1
        assert batch.created[RecordKind.PACKAGE] == 1
        package = next(iter(storage.packages.values()))
        assert package.carrier == "PostNL"
        assert package.tracking_number == "3SABCD1234567890"
        assert package.status == PackageStatus.IN_TRANSIT

        result = batch.results[0]
        assert result.classification.category == Category.DELIVERY
        assert result.classification_source == ClassificationSource.LOCAL
        assert result.rules_triggered == 1

    def test_invoice_creates_invoice(self, processor, storage, make_rule, invoice_message):
        make_rule(trigger={"category": "invoice"}, action={"type": "record_invoice"})
        make_rule(trigger={"category": "delivery"}, action={"type": "track_package"})

        batch = processor.process("owner-1", [invoice_message])

        assert batch.created[RecordKind.INVOICE] == 1
        assert batch.created[RecordKind.PACKAGE] == 0
        invoice = next(iter(storage.invoices.values()))
        assert invoice.amount == 84.5
        assert invoice.currency == "EUR"
        assert [r.triggered for r in batch.results[0].rules_executed] == [True, False]

    def test_order_lifecycle(self, processor, storage, make_rule, order_messages):
        """Test a confirmation and a shipment notice yield one order and one package."""
        make_rule(trigger={"category": "order"}, action={"type": "track_order"})

        batch = processor.process("owner-1", order_messages)

        assert batch.succeeded == 2
        assert batch.created[RecordKind.ORDER] == 1
        assert batch.created[RecordKind.PACKAGE] == 1
        assert len(storage.orders) == 1
        order = next(iter(storage.orders.values()))
        assert order.shop_name == "AliExpress"
        assert order.status == OrderStatus.SHIPPED
        assert order.shipped_date == order_messages[1].received_at
        assert order.package_id in storage.packages


class TestIdempotence:
    """Tests for processed-message bookkeeping."""

    def test_replay_skips_everything(self, processor, storage, make_rule, postnl_message, invoice_message, order_messages):
        make_rule(action={"type": "create_task"})
        messages = [postnl_message, invoice_message, *order_messages]

        first = processor.process("owner-1", messages)
        records_after_first = storage.record_count()
        second = processor.process("owner-1", messages)

        assert first.succeeded == 4
        assert second.processed == 4
        assert second.skipped == 4
        assert second.succeeded == 0
        assert all(count == 0 for count in second.created.values())
        assert storage.record_count() == records_after_first
        assert all(r.skipped for r in second.results)

    def test_duplicate_inside_one_batch(self, processor, storage, make_rule, postnl_message):
        make_rule(action={"type": "create_task"})

        batch = processor.process("owner-1", [postnl_message, postnl_message])

        assert batch.processed == 2
        assert batch.succeeded == 1
        assert batch.skipped == 1
        assert len(storage.tasks) == 1

    def test_no_persist_allows_reprocessing(self, processor, storage, make_rule, postnl_message):
        make_rule(action={"type": "create_task"})
        options = BatchOptions(persist=False)

        processor.process("owner-1", [postnl_message], options)
        again = processor.process("owner-1", [postnl_message], options)

        assert again.skipped == 0
        assert storage.processed == {}
        assert len(storage.tasks) == 2

    def test_processed_record_contents(self, processor, storage, make_rule, postnl_message):
        rule = make_rule(trigger={"category": "delivery"}, action={"type": "track_package"})

        processor.process("owner-1", [postnl_message])

        record = storage.find_processed_message("owner-1", "postnl-1")
        assert record.category == Category.DELIVERY
        assert record.classification_source == ClassificationSource.LOCAL
        assert record.rules_triggered == 1
        assert record.results[0]["ruleId"] == rule.id
        assert record.results[0]["result"] == {"packageId": "package-1"}

    def test_dedup_lookup_failure_propagates(self, processor, storage, postnl_message, monkeypatch):
        def broken(owner_id, external_id):
            raise ConnectionError("database down")

        monkeypatch.setattr(storage, "find_processed_message", broken)

        with pytest.raises(ConnectionError):
            processor.process("owner-1", [postnl_message])


class TestIsolation:
    """Tests that one failing message never affects the others."""

    def test_failing_message_is_isolated(self, storage, settings, make_rule, make_message):
        make_rule(action={"type": "create_task"})
        messages = [make_message(id=f"m{i}", subject=f"Taak {i}") for i in range(1, 5)]
        processor = BatchProcessor(storage, settings, classifier=ExplodingClassifier({"m2"}))

        batch = processor.process("owner-1", messages)

        assert batch.processed == 4
        assert batch.succeeded == 3
        assert batch.errors == 1
        assert batch.created[RecordKind.TASK] == 3
        failed = next(r for r in batch.results if r.message_id == "m2")
        assert failed.error == "classifier crashed on m2"
        assert set(key[1] for key in storage.processed) == {"m1", "m3", "m4"}

    def test_failed_message_is_retried_next_batch(self, storage, settings, make_rule, make_message):
        make_rule(action={"type": "create_task"})
        messages = [make_message(id="m1", subject="Taak"), make_message(id="m2", subject="Taak")]
        BatchProcessor(storage, settings, classifier=ExplodingClassifier({"m2"})).process("owner-1", messages)

        batch = BatchProcessor(storage, settings).process("owner-1", messages)

        assert batch.skipped == 1
        assert batch.succeeded == 1
        assert len(storage.tasks) == 2

    def test_record_write_failure_counts_as_error(self, processor, storage, make_rule, postnl_message, monkeypatch):
        def broken(record):
            raise RuntimeError("disk full")

        monkeypatch.setattr(storage, "save_processed_message", broken)

        batch = processor.process("owner-1", [postnl_message])

        assert batch.errors == 1
        assert batch.results[0].error == "disk full"

    def test_action_failure_is_not_a_message_error(self, processor, make_rule, postnl_message):
        make_rule(action={"type": "launch_rocket"})

        batch = processor.process("owner-1", [postnl_message])

        assert batch.succeeded == 1
        assert batch.errors == 0
        execution = batch.results[0].rules_executed[0]
        assert execution.triggered and not execution.action_executed


class TestSelection:
    """Tests for owner checks, the recency window and the message cap."""

    def test_unknown_owner(self, processor, postnl_message):
        with pytest.raises(OwnerNotFoundError):
            processor.process("nobody", [postnl_message])

    def test_max_messages(self, processor, make_message):
        messages = [make_message() for _ in range(5)]

        batch = processor.process("owner-1", messages, BatchOptions(max_messages=2))

        assert batch.processed == 2
        assert [r.message_id for r in batch.results] == [m.id for m in messages[:2]]

    def test_recency_window(self, processor, make_message):
        recent = make_message(id="recent", received_at=utcnow() - timedelta(hours=2))
        old = make_message(id="old", received_at=utcnow() - timedelta(hours=30))

        batch = processor.process("owner-1", [old, recent], BatchOptions(since_hours=24))

        assert [r.message_id for r in batch.results] == ["recent"]

    def test_zero_window_disables_filter(self, processor, make_message):
        old = make_message(received_at=utcnow() - timedelta(days=400))

        batch = processor.process("owner-1", [old], BatchOptions(since_hours=0))

        assert batch.processed == 1

    def test_empty_batch(self, processor):
        batch = processor.process("owner-1", [])

        assert batch.processed == 0
        assert batch.finished_at is not None


class TestClassifierSelection:
    """Tests for remote classification inside a batch."""

    def test_remote_failure_still_processes(self, storage, remote_settings, make_rule, postnl_message):
        make_rule(trigger={"category": "delivery"}, action={"type": "track_package"})
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(502)))
        classifier = RemoteClassifier(remote_settings, http_client=client)
        settings = remote_settings.model_copy(update={"since_hours": 0})

        batch = BatchProcessor(storage, settings, classifier=classifier).process("owner-1", [postnl_message])

        assert batch.succeeded == 1
        assert batch.results[0].classification_source == ClassificationSource.LOCAL
        assert len(storage.packages) == 1

    def test_local_only_skips_endpoint(self, storage, remote_settings, postnl_message):
        def handler(request):
            raise AssertionError("endpoint must not be called")

        classifier = RemoteClassifier(remote_settings, http_client=httpx.Client(transport=httpx.MockTransport(handler)))
        settings = remote_settings.model_copy(update={"since_hours": 0})

        batch = BatchProcessor(storage, settings, classifier=classifier).process(
            "owner-1", [postnl_message], BatchOptions(local_only=True)
        )

        assert batch.results[0].classification_source == ClassificationSource.LOCAL
        assert batch.results[0].classification.category == Category.DELIVERY


    def test_close_releases_both_http_clients(self, storage, remote_settings):
        """Test closing the processor closes the remote classifier and executor clients."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        classifier_client = httpx.Client(transport=transport)
        executor_client = httpx.Client(transport=transport)
        executor = ActionExecutor(storage, remote_settings, http_client=executor_client)
        processor = BatchProcessor(
            storage,
            remote_settings,
            classifier=RemoteClassifier(remote_settings, http_client=classifier_client),
            executor=executor,
        )

        processor.close()

        assert classifier_client.is_closed
        assert executor_client.is_closed

    def test_close_with_local_classifier(self, storage, settings):
        executor_client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        processor = BatchProcessor(
            storage, settings, executor=ActionExecutor(storage, settings, http_client=executor_client)
        )

        processor.close()

        assert isinstance(processor.classifier, LocalClassifier)
        assert executor_client.is_closed

class TestPreview:
    """Tests for dry-run rule previews."""

    def test_preview_executes_nothing(self, processor, storage, make_rule, postnl_message):
        delivery = make_rule(trigger={"category": "delivery"}, action={"type": "track_package"})
        make_rule(trigger={"category": "invoice"}, action={"type": "record_invoice"})
        broken = make_rule(action={"type": "teleport"})

        result = processor.preview("owner-1", postnl_message)

        assert storage.record_count() == 0
        assert storage.processed == {}
        assert [r.triggered for r in result.rules_executed] == [True, False, True]
        assert not any(r.action_executed for r in result.rules_executed)
        assert result.rules_executed[0].rule_id == delivery.id
        assert result.rules_executed[0].action_type == "track_package"
        assert result.rules_executed[2].rule_id == broken.id
        assert result.rules_executed[2].error == "Unknown action type: teleport"


class TestSerialization:
    """Tests for the JSON report and message loading."""

    def test_batch_to_dict(self, processor, make_rule, postnl_message):
        make_rule(trigger={"category": "delivery"}, action={"type": "track_package"})

        report = processor.process("owner-1", [postnl_message]).to_dict()

        assert report["ownerId"] == "owner-1"
        assert report["processed"] == 1
        assert report["success"] == 1
        assert report["createdRecords"]["packages"] == 1
        assert report["createdRecords"]["tasks"] == 0
        assert report["details"][0]["category"] == "delivery"
        assert report["details"][0]["rulesExecuted"][0]["result"] == {"packageId": "package-1"}

    def test_load_messages(self, tmp_path):
        path = tmp_path / "messages.json"
        path.write_text(
            '{"messages": [{"id": "a", "from": "PostNL <noreply@postnl.nl>", '
            '"subject": "Pakket", "receivedAt": "2026-03-10T09:30:00Z", '
            '"attachments": [{"filename": "label.pdf", "mimeType": "application/pdf"}]}]}'
        )

        messages = load_messages(str(path))

        assert len(messages) == 1
        assert messages[0].sender == "PostNL <noreply@postnl.nl>"
        assert messages[0].received_at.tzinfo is not None
        assert messages[0].attachments[0].mime_type == "application/pdf"
