"""
Roles and capabilities.

Capabilities are derived once per request from the stored admin account (never
from anything the client sends) and exposed as an immutable ``AuthContext`` on
``flask.g.auth``.
"""

import logging
from dataclasses import dataclass
from functools import wraps

from flask import abort, g, redirect, session, url_for

logger = logging.getLogger(__name__)

MAIN_ADMIN = "main_admin"
SUB_ADMIN = "sub_admin"
ROLES = (MAIN_ADMIN, SUB_ADMIN)

VIEW_DASHBOARD = "view_dashboard"
MANAGE_NOTIFICATIONS = "manage_notifications"
MANAGE_PHOTOS = "manage_photos"
MANAGE_ADMINS = "manage_admins"
ALL_CAPABILITIES = frozenset({VIEW_DASHBOARD, MANAGE_NOTIFICATIONS, MANAGE_PHOTOS, MANAGE_ADMINS})

SESSION_TOKEN_KEY = "admin_token"


@dataclass(frozen=True)
class AuthContext:
    admin_id: str
    userid: str
    role: str
    capabilities: frozenset

    def can(self, capability: str) -> bool:
        return capability in self.capabilities

    @property
    def is_main_admin(self) -> bool:
        return self.role == MAIN_ADMIN

    @property
    def role_label(self) -> str:
        return "Main Admin" if self.is_main_admin else "Sub Admin"


def capabilities_for(account) -> frozenset:
    if account.role == MAIN_ADMIN:
        return ALL_CAPABILITIES
    caps = {VIEW_DASHBOARD}
    if account.notification_access:
        caps.add(MANAGE_NOTIFICATIONS)
    if account.photo_access:
        caps.add(MANAGE_PHOTOS)
    return frozenset(caps)


def context_for(account) -> AuthContext:
    return AuthContext(
        admin_id=str(account.id),
        userid=account.userid,
        role=account.role,
        capabilities=capabilities_for(account),
    )


def init_auth(app, issuer, directory) -> None:
    """Resolve the session token into ``g.auth`` once, at the request boundary."""

    @app.before_request
    def _load_auth():
        g.auth = None
        token = session.get(SESSION_TOKEN_KEY)
        if not token:
            return
        admin_id = issuer.validate(token)
        account = directory.find(admin_id) if admin_id else None
        if account is None or not account.is_active:
            logger.info("Dropping stale admin session")
            session.pop(SESSION_TOKEN_KEY, None)
            return
        g.auth = context_for(account)

    @app.context_processor
    def _inject_auth():
        return {"auth": g.get("auth")}


def require_capability(capability: str):
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            auth = g.get("auth")
            if auth is None:
                return redirect(url_for("auth.login"))
            if not auth.can(capability):
                logger.warning("%s denied %s", auth.userid, capability)
                abort(403)
            return view(*args, **kwargs)
        return wrapped
    return decorator
