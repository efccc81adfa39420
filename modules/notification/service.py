"""
Storefront Core - Notification Sink
=====================================
Fire-and-forget dispatcher: in-app record + optional outbound webhook.
Delivery runs in its own session (via BackgroundTasks when given), and any
failure is logged and swallowed so it can never fail the calling request.
"""

import logging
from typing import List, Optional

import httpx
from sqlalchemy.orm import Session
from sqlalchemy import desc

from config.database import SessionLocal
from config.settings import NOTIFY_WEBHOOK_URL
from modules.notification.models import Notification

logger = logging.getLogger("storefront.notification")


class NotificationService:

    def __init__(self, session_factory=SessionLocal, webhook_url: str = NOTIFY_WEBHOOK_URL):
        self.session_factory = session_factory
        self.webhook_url = webhook_url

    # ------------------------------------------------------------------
    # Core: notify(user_id, event)
    # ------------------------------------------------------------------

    def notify(
        self,
        user_id: int,
        event: str,
        title: str,
        body: str,
        reference_id: Optional[str] = None,
        metadata: Optional[dict] = None,
        background_tasks=None,
    ):
        """
        Queue a notification. With FastAPI BackgroundTasks the delivery runs
        after the response is sent; otherwise it runs inline.
        """
        event = getattr(event, "value", event)
        if background_tasks is not None:
            background_tasks.add_task(self._deliver, user_id, event, title, body, reference_id, metadata)
        else:
            self._deliver(user_id, event, title, body, reference_id, metadata)

    def _deliver(self, user_id, event, title, body, reference_id=None, metadata=None):
        try:
            self._store(Notification(
                user_id=user_id,
                event=event,
                title=title,
                body=body,
                reference_type="order" if reference_id else None,
                reference_id=str(reference_id) if reference_id else None,
                metadata_json=metadata,
            ))
        except Exception as e:
            logger.warning(f"In-app notification for user #{user_id} ({event}) dropped: {e}")

        if self.webhook_url:
            self._post_webhook({
                "user_id": user_id,
                "event": event,
                "title": title,
                "body": body,
                "reference_id": reference_id,
                "metadata": metadata or {},
            })

    def _store(self, notification: Notification):
        db = self.session_factory()
        try:
            db.add(notification)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _post_webhook(self, payload: dict):
        try:
            resp = httpx.post(self.webhook_url, json=payload, timeout=5)
            if resp.status_code >= 400:
                logger.warning(f"Notification webhook error: {resp.status_code} - {resp.text[:200]}")
        except httpx.HTTPError as e:
            logger.warning(f"Notification webhook failed: {e}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_for_user(self, db: Session, user_id: int, limit: int = 20) -> List[Notification]:
        return (
            db.query(Notification)
            .filter(Notification.user_id == user_id)
            .order_by(desc(Notification.id))
            .limit(limit)
            .all()
        )


# Singleton
notification_service = NotificationService()
