import logging

from .errors import BackendError, BackendUnavailable, ValidationError
from .uploads import unique_name

logger = logging.getLogger(__name__)

GALLERY = "gallery"
SLIDESHOW = "slideshow"

COLLECTIONS = {
    GALLERY: {"table": "gallery_images", "bucket": "gallery-images"},
    SLIDESHOW: {"table": "slideshow_images", "bucket": "slideshow-images"},
}


def _collection(kind: str) -> dict:
    try:
        return COLLECTIONS[kind]
    except KeyError:
        raise ValidationError("Unknown photo collection.") from None


class PhotoService:
    """Gallery and homepage slideshow images: a bucket object plus a table row each."""

    def __init__(self, backend, max_image_bytes: int = 5 * 1024 * 1024):
        self.backend = backend
        self.max_image_bytes = max_image_bytes

    def list_gallery(self, category: str | None = None) -> list:
        filters = {"category": category} if category else None
        return self.backend.select(COLLECTIONS[GALLERY]["table"], filters=filters, order="uploaded_at.desc")

    def list_slideshow(self, active_only: bool = False) -> list:
        filters = {"is_active": True} if active_only else None
        return self.backend.select(COLLECTIONS[SLIDESHOW]["table"], filters=filters, order="display_order.asc")

    def categories(self) -> list:
        rows = self.backend.select(COLLECTIONS[GALLERY]["table"], columns="category")
        return sorted({r["category"] for r in rows if r.get("category")})

    def validate_image(self, upload) -> None:
        if not (upload.content_type or "").startswith("image/"):
            raise ValidationError("Only image files are allowed.")
        if upload.size > self.max_image_bytes:
            raise ValidationError("File size must be less than 5MB.")

    def upload(self, actor, kind: str, upload, title: str = "", description: str = "",
               category: str = "general", display_order: int = 0) -> dict:
        coll = _collection(kind)
        self.validate_image(upload)

        name = unique_name(upload.extension or "img")
        url = self.backend.upload(coll["bucket"], name, upload.data, upload.content_type)

        if kind == SLIDESHOW:
            row = {
                "filename": name,
                "url": url,
                "title": (title or "").strip() or upload.stem,
                "description": (description or "").strip(),
                "display_order": int(display_order or 0),
                "uploaded_by": actor.admin_id,
                "file_size": upload.size,
                "is_active": True,
            }
        else:
            row = {
                "filename": name,
                "url": url,
                "alt_text": upload.stem,
                "category": (category or "").strip() or "general",
                "uploaded_by": actor.admin_id,
                "file_size": upload.size,
            }

        try:
            created = self.backend.insert(coll["table"], row)
        except (BackendError, BackendUnavailable):
            self._remove_files(coll["bucket"], [name])
            raise

        logger.info("%s uploaded %s image %s (%d bytes)", actor.userid, kind, name, upload.size)
        return created

    def delete_many(self, kind: str, ids) -> int:
        coll = _collection(kind)
        ids = [str(i) for i in ids if i]
        if not ids:
            return 0

        rows = self.backend.select(coll["table"], filters={"id": ids}, columns="id,filename")
        self._remove_files(coll["bucket"], [r.get("filename") for r in rows])
        deleted = self.backend.delete(coll["table"], filters={"id": ids})
        logger.info("Deleted %d %s image(s)", len(deleted), kind)
        return len(deleted)

    def _remove_files(self, bucket: str, names) -> None:
        try:
            self.backend.remove(bucket, names)
        except (BackendError, BackendUnavailable) as exc:
            logger.error("Could not remove objects from %s: %s", bucket, exc)
