"""
Handlers that reach outside the engine: notifications and webhooks.

Neither produces a domain record. Notification delivery itself happens
elsewhere; this only decides the channel and text.
"""

from lifeflow.core.logging import get_logger
from lifeflow.handlers.base import ActionContext, ActionOutcome, BaseActionHandler
from lifeflow.handlers.registry import register_handler
from lifeflow.rules.models import ActionKind, SendNotificationParams, WebhookParams

log = get_logger(__name__)


@register_handler
class SendNotificationHandler(BaseActionHandler):
    """Schedules a notification on the rule's channel."""

    kind = ActionKind.SEND_NOTIFICATION

    def handle(self, ctx: ActionContext, params: SendNotificationParams) -> ActionOutcome:
        if params.message:
            text = ctx.render(params.message)
        else:
            text = ctx.render("New {{category}} message from {{sender}}: {{subject}}")

        log.info(
            "notification_scheduled",
            channel=params.channel,
            rule_id=ctx.rule.id,
            message_id=ctx.message.id,
            length=len(text),
        )
        return ActionOutcome(success=True, detail=f"Notification scheduled on {params.channel}")


@register_handler
class WebhookHandler(BaseActionHandler):
    """Posts the message and its extracted data to the rule's URL once."""

    kind = ActionKind.WEBHOOK

    def handle(self, ctx: ActionContext, params: WebhookParams) -> ActionOutcome:
        if self.http_client is None:
            return ActionOutcome.failed("No HTTP client available for webhook")

        payload = {
            "rule": {"id": ctx.rule.id, "name": ctx.rule.name},
            "message": ctx.message.to_dict(),
            "classification": ctx.classification.to_dict(),
            "extractedData": ctx.extracted.to_dict(),
        }
        response = self.http_client.post(
            params.url,
            json=payload,
            headers=params.headers,
            timeout=self.settings.webhook_timeout,
        )

        if not response.is_success:
            log.warning("webhook_failed", url=params.url, status=response.status_code)
            return ActionOutcome.failed(f"Webhook failed: {response.status_code}")

        log.info("webhook_delivered", url=params.url, status=response.status_code)
        return ActionOutcome(success=True, detail=f"Webhook delivered: {response.status_code}")
