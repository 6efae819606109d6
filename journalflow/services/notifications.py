"""Notification service for webhook delivery.

Handles:
- Webhook notifications to external systems on approval status changes
- Per-webhook payload templates
- Retry logic for failed deliveries
"""

import json
import logging
from datetime import datetime
from typing import Optional, Dict, Any, List

import httpx
from jinja2 import Template
from sqlalchemy.orm import Session

from journalflow.core.config import Settings, get_settings
from journalflow.db.models.notification import (
    WebhookConfig,
    NotificationLog,
    NotificationEventType,
)

logger = logging.getLogger(__name__)


EVENT_TITLES = {
    NotificationEventType.JOURNAL_SUBMITTED: "Journal submitted for approval",
    NotificationEventType.JOURNAL_STEP_ADVANCED: "Journal moved to the next approval step",
    NotificationEventType.JOURNAL_APPROVED: "Journal approved",
    NotificationEventType.JOURNAL_REJECTED: "Journal rejected",
    NotificationEventType.JOURNAL_RECALLED: "Journal recalled by the submitter",
}


class NotificationService:
    """
    Service for sending approval notifications via webhooks.

    Delivery is best effort: failures are logged and recorded on the
    NotificationLog row, never raised to the caller.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None, transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize notification service.

        Args:
            db: Database session
            settings: Application settings
            transport: Optional httpx transport (used by tests)
        """
        self.db = db
        self.settings = settings or get_settings()
        self.transport = transport

    def notify(self, event_type: NotificationEventType, payload: Dict[str, Any]) -> List[str]:
        """
        Send ``event_type`` to every active webhook subscribed to it.

        Returns:
            List of notification log IDs
        """
        notification_ids = []

        webhooks = self.db.query(WebhookConfig).filter(WebhookConfig.is_active == True).all()
        for webhook in webhooks:
            if not webhook.wants(event_type):
                continue
            notif_id = self._send_webhook(webhook, event_type, payload)
            if notif_id:
                notification_ids.append(notif_id)

        return notification_ids

    def _send_webhook(
        self,
        webhook: WebhookConfig,
        event_type: NotificationEventType,
        context: Dict[str, Any],
    ) -> Optional[str]:
        """Send a webhook notification."""
        body = self._build_payload(webhook, event_type, context)

        log = NotificationLog(
            event_type=event_type.value,
            recipient=webhook.name,
            webhook_id=webhook.id,
            journal_number=context.get("journal_number"),
            payload=body,
            status="pending",
            attempts=0,
        )
        self.db.add(log)
        self.db.flush()

        max_attempts = max(1, self.settings.webhook_max_retries)
        last_error = None
        for attempt in range(1, max_attempts + 1):
            log.attempts = attempt
            try:
                self._deliver_webhook(webhook, body)
                last_error = None
                break
            except httpx.HTTPError as e:
                last_error = e
                logger.warning(f"Webhook {webhook.name} attempt {attempt}/{max_attempts} failed: {e}")

        if last_error is None:
            log.status = "sent"
            log.sent_at = datetime.utcnow()
            webhook.last_triggered_at = datetime.utcnow()
            webhook.failure_count = 0
            webhook.last_error = None
        else:
            logger.error(f"Failed to send webhook to {webhook.url} after {max_attempts} attempts")
            log.status = "failed"
            log.error_message = str(last_error)
            webhook.failure_count = (webhook.failure_count or 0) + 1
            webhook.last_error = str(last_error)

        self.db.commit()
        return str(log.id)

    def _deliver_webhook(self, webhook: WebhookConfig, payload: Dict[str, Any]) -> None:
        """Actually deliver the webhook."""
        headers = dict(webhook.headers or {})
        headers["Content-Type"] = "application/json"

        if webhook.auth_type == "bearer":
            headers["Authorization"] = f"Bearer {webhook.auth_value}"
        elif webhook.auth_type == "header" and webhook.auth_value:
            # auth_value is JSON with header name and value
            auth = json.loads(webhook.auth_value)
            headers[auth["name"]] = auth["value"]

        with httpx.Client(timeout=self.settings.webhook_timeout, transport=self.transport) as client:
            if (webhook.method or "POST").upper() == "PUT":
                response = client.put(webhook.url, json=payload, headers=headers)
            else:
                response = client.post(webhook.url, json=payload, headers=headers)

            response.raise_for_status()

    def _build_payload(
        self,
        webhook: WebhookConfig,
        event_type: NotificationEventType,
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        if webhook.payload_template:
            try:
                template = Template(webhook.payload_template)
                return json.loads(
                    template.render(
                        event_type=event_type.value,
                        event_title=EVENT_TITLES.get(event_type, event_type.value),
                        timestamp=datetime.utcnow().isoformat(),
                        **context,
                    )
                )
            except Exception as e:
                logger.warning(f"Failed to render payload template of webhook {webhook.name}: {e}")
        return self._build_default_payload(event_type, context)

    def _build_default_payload(
        self,
        event_type: NotificationEventType,
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Build default webhook payload."""
        return {
            "event": event_type.value,
            "title": EVENT_TITLES.get(event_type, event_type.value),
            "timestamp": datetime.utcnow().isoformat(),
            "data": context,
        }
