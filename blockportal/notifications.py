import logging
from datetime import datetime, timezone

from .errors import BackendError, BackendUnavailable, NotFound, ValidationError
from .uploads import unique_name

logger = logging.getLogger(__name__)

TABLE = "notifications"
BUCKET = "notification-files"
WITH_AUTHOR = "*,admins!notifications_created_by_fkey(userid)"

ALLOWED_ATTACHMENTS = {
    "html": {"text/html"},
    "pdf": {"application/pdf"},
    "xls": {"application/vnd.ms-excel"},
    "xlsx": {"application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"},
}


def _clean(value) -> str:
    return (value or "").strip()


class NotificationService:
    def __init__(self, backend, max_attachment_bytes: int = 10 * 1024 * 1024):
        self.backend = backend
        self.max_attachment_bytes = max_attachment_bytes

    def list_all(self) -> list:
        rows = self.backend.select(TABLE, columns=WITH_AUTHOR, order="created_at.desc")
        for row in rows:
            author = row.pop("admins", None) or {}
            row["author"] = author.get("userid")
        return rows

    def list_active(self, limit: int | None = None) -> list:
        return self.backend.select(TABLE, filters={"is_active": True}, order="created_at.desc", limit=limit)

    def get(self, notification_id: str) -> dict:
        rows = self.backend.select(TABLE, filters={"id": notification_id})
        if not rows:
            raise NotFound("Notification not found.")
        return rows[0]

    def validate_attachment(self, upload) -> None:
        ext = upload.extension
        allowed = ALLOWED_ATTACHMENTS.get(ext)
        if not allowed or upload.content_type not in allowed:
            raise ValidationError("Only HTML, PDF, and Excel files are allowed.")
        if upload.size > self.max_attachment_bytes:
            raise ValidationError("File size must be less than 10MB.")

    def create(self, actor, title: str, content: str, is_active: bool = True,
               upload=None, dynamic_url: str | None = None, url_title: str | None = None) -> dict:
        title, content = _clean(title), _clean(content)
        if not title or not content:
            raise ValidationError("Title and content are required.")
        dynamic_url = _clean(dynamic_url) or None
        if dynamic_url and not dynamic_url.startswith(("http://", "https://")):
            raise ValidationError("Links must start with http:// or https://.")

        row = {
            "title": title,
            "content": content,
            "is_active": bool(is_active),
            "created_by": actor.admin_id,
            "file_url": None,
            "file_name": None,
            "file_type": None,
            "file_size": None,
            "dynamic_url": dynamic_url,
            "url_title": _clean(url_title) or None,
        }

        stored = None
        if upload is not None:
            self.validate_attachment(upload)
            stored = unique_name(upload.extension)
            row["file_url"] = self.backend.upload(BUCKET, stored, upload.data, upload.content_type)
            row["file_name"] = stored
            row["file_type"] = upload.extension
            row["file_size"] = upload.size

        try:
            created = self.backend.insert(TABLE, row)
        except (BackendError, BackendUnavailable):
            if stored:
                self._remove_file(stored)
            raise

        logger.info("%s created notification %s", actor.userid, created.get("id"))
        return created

    def update(self, notification_id: str, title: str | None = None, content: str | None = None,
               is_active: bool | None = None) -> dict:
        values = {"updated_at": datetime.now(timezone.utc).isoformat()}
        if title is not None:
            if not _clean(title):
                raise ValidationError("Title cannot be empty.")
            values["title"] = _clean(title)
        if content is not None:
            if not _clean(content):
                raise ValidationError("Content cannot be empty.")
            values["content"] = _clean(content)
        if is_active is not None:
            values["is_active"] = bool(is_active)

        rows = self.backend.update(TABLE, values, filters={"id": notification_id})
        if not rows:
            raise NotFound("Notification not found.")
        return rows[0]

    def delete(self, notification_id: str) -> None:
        notification = self.get(notification_id)
        if notification.get("file_url") and notification.get("file_name"):
            self._remove_file(notification["file_name"].split("/")[-1])
        self.backend.delete(TABLE, filters={"id": notification_id})
        logger.info("Deleted notification %s", notification_id)

    def _remove_file(self, name: str) -> None:
        try:
            self.backend.remove(BUCKET, [name])
        except (BackendError, BackendUnavailable) as exc:
            logger.error("Could not remove %s/%s: %s", BUCKET, name, exc)
