"""Notification Service.

Multi-channel notification delivery (in-app, push, email, Slack) plus the
in-app inbox operations used by the dashboard.

Channels default from priority:

    urgent  -> in_app, push, email, slack
    high    -> in_app, push, email
    normal  -> in_app, push
    low     -> in_app

A notification succeeds when at least one channel delivers it.

Security Impact:
    - Every send is audited with per-channel outcomes (no message bodies)
    - Inbox updates are scoped by both notification id and user id

Architecture:
    - Domain service over DatabasePort, FunctionsPort and an optional
      NotificationChannelPort for Slack
"""

import logging
from typing import Any, Optional

from src.domain.notification_models import (
    ChannelResult,
    Notification,
    NotificationResult,
    NotificationTarget,
    default_channels,
)
from src.domain.ports import (
    DatabasePort,
    FunctionsPort,
    NotificationChannelPort,
    ServiceResult,
    TableQuery,
)
from src.domain.utils import drop_none, utc_now_iso
from src.infrastructure.audit import AuditLogger

logger = logging.getLogger(__name__)

NOTIFICATIONS_TABLE = "user_notifications"
INBOX_LIMIT = 50


class NotificationService:
    """Routes notifications to channels and manages the in-app inbox.

    Parameters:
        database: DatabasePort for ``user_notifications``
        functions: FunctionsPort for the push-notification function
        slack: Optional Slack channel; without it Slack reports "Slack not configured"

    Example Usage:
        ```python
        service = NotificationService(database, functions, slack=SlackWebhookChannel(config))
        service.send_clinical_notification(
            NotificationTarget(user_id=nurse_id),
            "Fall risk elevated",
            "Room 412 reassessment scored 82.",
        )
        ```
    """

    def __init__(
        self,
        database: DatabasePort,
        functions: FunctionsPort,
        slack: Optional[NotificationChannelPort] = None,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.database = database
        self.functions = functions
        self.slack = slack
        self.audit = audit_logger or AuditLogger(database, category="SYSTEM_EVENT")

    def is_slack_configured(self) -> bool:
        return self.slack is not None and getattr(self.slack, "configured", True)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def send(self, notification: Notification) -> ServiceResult[NotificationResult]:
        """Deliver a notification on its channels (or the priority defaults)."""
        channels = notification.channels or default_channels(notification.priority)
        target = notification.target
        user_ids = target.resolved_user_ids()

        results = {name: ChannelResult(error="Not attempted") for name in ("in_app", "push", "email", "slack")}
        notification_id = None

        if "in_app" in channels and user_ids:
            results["in_app"], notification_id = self._send_in_app(notification, user_ids)

        if "push" in channels and user_ids:
            results["push"] = self._send_push(notification, user_ids)

        if "email" in channels and target.email:
            # No email transport is wired into this service
            results["email"] = ChannelResult(error="Email service not configured")

        if "slack" in channels:
            results["slack"] = self._send_slack(notification)

        success = any(result.success for result in results.values())
        self.audit.info("NOTIFICATION_SENT", {
            "title": notification.title,
            "category": notification.category,
            "priority": notification.priority,
            "channels": list(channels),
            "channelResults": {name: result.success for name, result in results.items()},
            "success": success,
        })

        return ServiceResult.success_result(
            NotificationResult(success=success, notification_id=notification_id, channel_results=results)
        )

    def _send_in_app(self, notification: Notification, user_ids: list[str]) -> tuple[ChannelResult, Optional[str]]:
        if notification.ephemeral:
            return ChannelResult(success=True), None

        rows = [
            drop_none({
                "user_id": user_id,
                "title": notification.title,
                "body": notification.body,
                "category": notification.category,
                "priority": notification.priority,
                "data": notification.data,
                "action_url": notification.action_url,
                "expires_at": notification.expires_at,
                "tenant_id": notification.target.tenant_id,
            })
            for user_id in user_ids
        ]
        result = self.database.insert(NOTIFICATIONS_TABLE, rows)
        if result.is_failure():
            self.audit.error("IN_APP_NOTIFICATION_FAILED", result.error.message, {
                "userIds": user_ids,
                "title": notification.title,
            })
            return ChannelResult(error=result.error.message), None

        first_id = result.data[0].get("id") if result.data else None
        return ChannelResult(success=True), first_id

    def _send_push(self, notification: Notification, user_ids: list[str]) -> ChannelResult:
        fcm_priority = "high" if notification.priority in ("urgent", "high") else "normal"
        data = dict(notification.data or {})
        data.update({"category": notification.category, "actionUrl": notification.action_url})

        result = self.functions.invoke("send-push-notification", {
            "title": notification.title,
            "body": notification.body,
            "user_ids": user_ids,
            "data": drop_none(data),
            "priority": fcm_priority,
        })
        if result.is_failure():
            self.audit.warn("PUSH_NOTIFICATION_FAILED", {
                "error": result.error.message,
                "title": notification.title,
            })
            return ChannelResult(error=result.error.message)
        return ChannelResult(success=True)

    def _send_slack(self, notification: Notification) -> ChannelResult:
        if not self.is_slack_configured():
            return ChannelResult(error="Slack not configured")

        result = self.slack.send({
            "title": notification.title,
            "body": notification.body,
            "category": notification.category,
            "priority": notification.priority,
            "channel": notification.target.slack_channel,
            "data": notification.data,
            "action_url": notification.action_url,
        })
        if result.is_failure():
            return ChannelResult(error=result.error.message)
        return ChannelResult(success=True)

    # ------------------------------------------------------------------
    # Convenience senders
    # ------------------------------------------------------------------

    def _compose(self, target: NotificationTarget, title: str, body: str, defaults: dict, overrides: dict) -> Notification:
        return Notification(title=title, body=body, target=target, **{**defaults, **overrides})

    def send_system_notification(self, target: NotificationTarget, title: str, body: str, **options: Any):
        return self.send(self._compose(target, title, body, {"category": "system", "priority": "normal"}, options))

    def send_security_alert(self, target: NotificationTarget, title: str, body: str, **options: Any):
        defaults = {"category": "security", "priority": "urgent", "channels": ["in_app", "push", "email", "slack"]}
        return self.send(self._compose(target, title, body, defaults, options))

    def send_clinical_notification(self, target: NotificationTarget, title: str, body: str, **options: Any):
        return self.send(self._compose(target, title, body, {"category": "clinical", "priority": "high"}, options))

    def send_appointment_reminder(
        self,
        target: NotificationTarget,
        patient_name: str,
        appointment_date: str,
        appointment_time: str,
        provider_name: str,
        location: str
    ) -> ServiceResult[NotificationResult]:
        return self.send(Notification(
            title=f"Appointment Reminder - {appointment_date}",
            body=f"Your appointment with {provider_name} is scheduled for {appointment_time} at {location}.",
            category="appointment",
            priority="normal",
            target=target,
            data={
                "patientName": patient_name,
                "appointmentDate": appointment_date,
                "appointmentTime": appointment_time,
                "providerName": provider_name,
                "location": location,
            },
        ))

    def send_medication_reminder(
        self,
        target: NotificationTarget,
        medication_name: str,
        dosage: str,
        scheduled_time: str,
        instructions: Optional[str] = None
    ) -> ServiceResult[NotificationResult]:
        body = f"Time to take {dosage} of {medication_name}. {instructions or ''}".strip()
        return self.send(Notification(
            title=f"Medication Reminder: {medication_name}",
            body=body,
            category="medication",
            priority="high",
            target=target,
            data=drop_none({
                "medicationName": medication_name,
                "dosage": dosage,
                "scheduledTime": scheduled_time,
                "instructions": instructions,
            }),
        ))

    def send_wellness_check(self, target: NotificationTarget, check_type: str, body: str):
        return self.send(Notification(
            title=f"Wellness Check: {check_type}",
            body=body,
            category="wellness",
            priority="normal",
            target=target,
        ))

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    def _unread_query(self, user_id: str, columns: str = "*") -> TableQuery:
        return (
            TableQuery(NOTIFICATIONS_TABLE, columns)
            .eq("user_id", user_id)
            .is_null("read_at")
            .is_null("dismissed_at")
        )

    def get_unread_notifications(self, user_id: str) -> ServiceResult[list[dict]]:
        result = self.database.select(
            self._unread_query(user_id).order("created_at", ascending=False).limit(INBOX_LIMIT)
        )
        if result.is_failure():
            self.audit.error("GET_NOTIFICATIONS_FAILED", result.error.message, {"userId": user_id})
            return ServiceResult.from_failure(result)
        return ServiceResult.success_result(result.data or [])

    def get_unread_count(self, user_id: str) -> ServiceResult[int]:
        result = self.database.count(self._unread_query(user_id))
        if result.is_failure():
            return ServiceResult.from_failure(result)
        return ServiceResult.success_result(result.data or 0)

    def mark_as_read(self, notification_id: str, user_id: str) -> ServiceResult[bool]:
        query = TableQuery(NOTIFICATIONS_TABLE).eq("id", notification_id).eq("user_id", user_id)
        result = self.database.update(query, {"read_at": utc_now_iso()})
        if result.is_failure():
            self.audit.error("MARK_READ_FAILED", result.error.message, {
                "notificationId": notification_id,
                "userId": user_id,
            })
            return ServiceResult.from_failure(result)
        return ServiceResult.success_result(True)

    def mark_all_as_read(self, user_id: str) -> ServiceResult[int]:
        """Mark every unread notification read; returns how many changed."""
        query = TableQuery(NOTIFICATIONS_TABLE).eq("user_id", user_id).is_null("read_at")
        result = self.database.update(query, {"read_at": utc_now_iso()})
        if result.is_failure():
            self.audit.error("MARK_ALL_READ_FAILED", result.error.message, {"userId": user_id})
            return ServiceResult.from_failure(result)
        return ServiceResult.success_result(len(result.data or []))

    def dismiss(self, notification_id: str, user_id: str) -> ServiceResult[bool]:
        query = TableQuery(NOTIFICATIONS_TABLE).eq("id", notification_id).eq("user_id", user_id)
        result = self.database.update(query, {"dismissed_at": utc_now_iso()})
        if result.is_failure():
            self.audit.error("DISMISS_NOTIFICATION_FAILED", result.error.message, {
                "notificationId": notification_id,
                "userId": user_id,
            })
            return ServiceResult.from_failure(result)
        return ServiceResult.success_result(True)
