"""
Admin accounts stored in the hosted ``admins`` table.

AdminDirectory is both the credential verifier used by the login governor and
the service behind the user-management pages (main admin only).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from passlib.context import CryptContext

from .authz import MAIN_ADMIN, MANAGE_ADMINS, ROLES, SUB_ADMIN
from .errors import BackendError, DirectoryError, NotFound, PermissionDenied, ValidationError

logger = logging.getLogger(__name__)

TABLE = "admins"
PUBLIC_COLUMNS = "id,userid,role,notification_access,photo_access,created_by,created_at,updated_at,is_active"


@dataclass(frozen=True)
class AdminAccount:
    id: str
    userid: str
    role: str
    notification_access: bool = False
    photo_access: bool = False
    is_active: bool = True
    created_by: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> "AdminAccount":
        return cls(
            id=str(row["id"]),
            userid=row["userid"],
            role=row.get("role") or SUB_ADMIN,
            # Rows created before permissions existed default to full access
            notification_access=bool(row.get("notification_access", True) is not False),
            photo_access=bool(row.get("photo_access", True) is not False),
            is_active=bool(row.get("is_active", True)),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    @property
    def is_main_admin(self) -> bool:
        return self.role == MAIN_ADMIN


@dataclass(frozen=True)
class Verification:
    valid: bool
    subject: AdminAccount | None = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_manager(actor) -> None:
    if actor is None or not actor.can(MANAGE_ADMINS):
        raise PermissionDenied("Only the main admin can manage admin accounts.")


class AdminDirectory:
    def __init__(self, backend, bcrypt_rounds: int = 12):
        self.backend = backend
        self.pwd = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=bcrypt_rounds)
        self._dummy_hash = None

    def hash_password(self, password: str) -> str:
        return self.pwd.hash(password)

    def _check(self, password: str, password_hash: str | None) -> bool:
        if not password_hash:
            if self._dummy_hash is None:
                self._dummy_hash = self.pwd.hash("placeholder-password-never-matches")
            self.pwd.verify(password, self._dummy_hash)
            return False
        try:
            return self.pwd.verify(password, password_hash)
        except ValueError:
            logger.error("Stored password hash is not a bcrypt hash")
            return False

    def verify(self, identifier: str, secret: str) -> Verification:
        """
        Validate credentials for an active admin.
        Unknown identifiers still pay for a hash check so the response time
        does not reveal whether the account exists.
        """
        rows = self.backend.select(TABLE, filters={"userid": (identifier or "").strip(), "is_active": True})
        row = rows[0] if rows else None
        if not self._check(secret or "", row.get("password_hash") if row else None):
            return Verification(valid=False)
        return Verification(valid=True, subject=AdminAccount.from_row(row))

    # ---- lookups --------------------------------------------------------

    def find(self, admin_id: str) -> AdminAccount | None:
        try:
            rows = self.backend.select(TABLE, filters={"id": admin_id}, columns=PUBLIC_COLUMNS)
        except BackendError:
            return None
        return AdminAccount.from_row(rows[0]) if rows else None

    def get(self, admin_id: str) -> AdminAccount:
        account = self.find(admin_id)
        if account is None:
            raise NotFound("User not found.")
        return account

    def list_admins(self) -> list:
        rows = self.backend.select(TABLE, columns=PUBLIC_COLUMNS, order="created_at.desc")
        return [AdminAccount.from_row(r) for r in rows]

    def _userid_owner(self, userid: str) -> str | None:
        rows = self.backend.select(TABLE, filters={"userid": userid}, columns="id,userid")
        return str(rows[0]["id"]) if rows else None

    # ---- management (main admin only) -----------------------------------

    def create_admin(self, actor, userid: str, password: str, role: str = SUB_ADMIN,
                     notification_access: bool = True, photo_access: bool = True) -> AdminAccount:
        _require_manager(actor)
        userid = (userid or "").strip()
        if not userid or not password:
            raise ValidationError("User ID and password are required.")
        if role not in ROLES:
            raise ValidationError("Unknown role.")
        if self._userid_owner(userid):
            raise DirectoryError("User ID already exists.")

        row = self.backend.insert(TABLE, {
            "userid": userid,
            "password_hash": self.hash_password(password),
            "role": role,
            "notification_access": bool(notification_access),
            "photo_access": bool(photo_access),
            "created_by": actor.admin_id,
            "is_active": True,
        })
        logger.info("%s created %s account %s", actor.userid, role, userid)
        return AdminAccount.from_row(row)

    def update_admin(self, actor, admin_id: str, userid: str, role: str,
                     notification_access: bool, photo_access: bool, is_active: bool,
                     password: str | None = None) -> AdminAccount:
        _require_manager(actor)
        userid = (userid or "").strip()
        if not userid:
            raise ValidationError("User ID is required.")
        if role not in ROLES:
            raise ValidationError("Unknown role.")

        current = self.get(admin_id)
        owner = self._userid_owner(userid)
        if owner and owner != current.id:
            raise DirectoryError("User ID already exists.")
        if current.id == actor.admin_id and (not is_active or role != MAIN_ADMIN):
            raise DirectoryError("You cannot deactivate or demote your own account.")

        values = {
            "userid": userid,
            "role": role,
            "notification_access": bool(notification_access),
            "photo_access": bool(photo_access),
            "is_active": bool(is_active),
            "updated_at": _now_iso(),
        }
        if password:
            values["password_hash"] = self.hash_password(password)

        rows = self.backend.update(TABLE, values, filters={"id": current.id})
        if not rows:
            raise NotFound("User not found.")
        logger.info("%s updated account %s", actor.userid, userid)
        return AdminAccount.from_row(rows[0])

    def set_active(self, actor, admin_id: str, is_active: bool) -> None:
        _require_manager(actor)
        if admin_id == actor.admin_id and not is_active:
            raise DirectoryError("Cannot deactivate your own account.")
        rows = self.backend.update(TABLE, {"is_active": bool(is_active), "updated_at": _now_iso()},
                                   filters={"id": admin_id})
        if not rows:
            raise NotFound("User not found.")
        logger.info("%s set account %s active=%s", actor.userid, admin_id, is_active)

    def delete_admin(self, actor, admin_id: str) -> None:
        _require_manager(actor)
        target = self.get(admin_id)
        if target.is_main_admin:
            raise DirectoryError("Cannot delete main admin user.")
        self.backend.delete(TABLE, filters={"id": target.id})
        logger.info("%s deleted account %s", actor.userid, target.userid)
