"""Notification endpoints: multi-channel send and the in-app inbox."""

import logging

from fastapi import APIRouter, Query

from src.dashboard.api.dependencies import NotificationServiceDep
from src.dashboard.api.responses import respond
from src.dashboard.models.requests import NotificationReadBody
from src.domain.notification_models import Notification

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.post("/send")
def send_notification(notification: Notification, notifications: NotificationServiceDep):
    """Deliver on the requested channels, or the priority defaults when none are given."""
    return respond(notifications.send(notification))


@router.get("/unread")
def get_unread_notifications(notifications: NotificationServiceDep, user_id: str = Query(..., alias="userId")):
    return respond(notifications.get_unread_notifications(user_id))


@router.get("/unread/count")
def get_unread_count(notifications: NotificationServiceDep, user_id: str = Query(..., alias="userId")):
    return respond(notifications.get_unread_count(user_id))


@router.post("/read-all")
def mark_all_as_read(body: NotificationReadBody, notifications: NotificationServiceDep):
    return respond(notifications.mark_all_as_read(body.user_id))


@router.post("/{notification_id}/read")
def mark_as_read(notification_id: str, body: NotificationReadBody, notifications: NotificationServiceDep):
    return respond(notifications.mark_as_read(notification_id, body.user_id))


@router.post("/{notification_id}/dismiss")
def dismiss(notification_id: str, body: NotificationReadBody, notifications: NotificationServiceDep):
    return respond(notifications.dismiss(notification_id, body.user_id))
