"""Worker notification sink.

Rows are deduplicated on ``dedupe_key`` (unique column), so retried sweeps
and racing finalizers can only ever create one notification per logical
event. A push relay is fired after a successful insert when
PUSH_WEBHOOK_URL is configured.
"""
import logging
from datetime import datetime, timezone

import requests
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from autotime.core.config import settings
from autotime.models.notification import Notification

logger = logging.getLogger(__name__)


def dedupe_key(worker_id, shift_date, reason_tag: str) -> str:
    return f"{worker_id}:{shift_date}:{reason_tag}"


class NotificationService:

    def __init__(self, db: Session):
        self.db = db
        self.base_timeout = 15
        self.push_webhook_url = settings.PUSH_WEBHOOK_URL

    def notify(self, worker_id: int, title: str, body: str, type: str, dedupe_key: str = None) -> bool:
        """Insert one notification. Returns False if it was a duplicate."""
        if dedupe_key:
            existing = self.db.query(Notification.id).filter(Notification.dedupe_key == dedupe_key).first()
            if existing:
                logger.info(f"Notification {dedupe_key} already sent, skipping")
                return False

        notification = Notification(
            worker_id=worker_id,
            title=title,
            body=body,
            type=type,
            dedupe_key=dedupe_key,
        )
        self.db.add(notification)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost the insert race to another writer with the same dedupe key
            self.db.rollback()
            logger.info(f"Notification {dedupe_key} inserted concurrently, skipping")
            return False

        self._push(worker_id, title, body)
        return True

    def _push(self, worker_id: int, title: str, body: str) -> dict:
        """Relay to the push service. Failures are logged, never raised."""
        if not self.push_webhook_url:
            logger.debug("Push webhook URL not configured, skipping")
            return {"skipped": True, "reason": "no_url_configured"}

        try:
            resp = requests.post(
                self.push_webhook_url,
                json={"worker_id": worker_id, "title": title, "body": body},
                headers={
                    "Content-Type": "application/json",
                    "X-AutoTime-Timestamp": datetime.now(timezone.utc).isoformat(),
                },
                timeout=self.base_timeout,
            )
            if resp.status_code >= 400:
                logger.warning(f"Push relay for worker {worker_id} returned {resp.status_code}: {resp.text[:200]}")
            else:
                logger.info(f"Push relay for worker {worker_id} sent ({resp.status_code})")
            return {"success": resp.status_code < 400, "status_code": resp.status_code}
        except Exception as e:
            logger.error(f"Push relay for worker {worker_id} failed: {e}")
            return {"success": False, "error": str(e)}
